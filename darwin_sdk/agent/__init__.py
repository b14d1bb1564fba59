from darwin_sdk.agent.service import BrowserAgent
from darwin_sdk.agent.views import ExecutionOutcome, FinalResult, TaskConfig, ThoughtEntry

__all__ = ['BrowserAgent', 'ExecutionOutcome', 'FinalResult', 'TaskConfig', 'ThoughtEntry']
