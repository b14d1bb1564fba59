import pytest

from darwin_sdk.agent.reasoning import (
    DEFAULT_FAILURE_MESSAGE,
    DEFAULT_SUCCESS_MESSAGE,
    normalize_reasoning,
    sanitize_result_message,
    strip_control_chars,
)

SAMPLES = [
    '{"reasoning": "I see the login form"}',
    '{reasoning: Clicked menu}',
    'thought: "Click the button"',
    '"text": "quoted twice"',
    '  [[{ nested brackets }]]  ',
    'Line one\\nLine two',
    '<ctrl46>Hello\x07   world',
    '"\'mixed quotes\'"',
    '{"reasoning": "{\\"thought\\": \\"deep\\"}"}',
    '\x1b[32mcoloured\x1b[0m output',
    '',
    '   ',
    '{}',
    'input: ',
]


@pytest.mark.parametrize("raw", SAMPLES)
def test_normalization_is_idempotent(raw):
    once = normalize_reasoning(raw)
    assert normalize_reasoning(once) == once


@pytest.mark.parametrize(
    "raw,expected",
    [
        ('{"reasoning": "I see the login form"}', 'I see the login form'),
        ('{"reasoning": Clicked menu}', 'Clicked menu'),
        ('thought: "Click the button"', 'Click the button'),
        ('Line one\\nLine two', 'Line one\nLine two'),
        ('<ctrl46>Hello\x07 world', 'Hello world'),
        ('say \\"hi\\"', 'say "hi"'),
        ('   plain text   ', 'plain text'),
    ],
)
def test_normalization_strips_wrappers(raw, expected):
    assert normalize_reasoning(raw) == expected


@pytest.mark.parametrize("raw", [None, 42, {'thought': 'x'}, '', '{}', '""'])
def test_normalization_of_non_text_is_empty(raw):
    assert normalize_reasoning(raw) == ''


def test_strip_control_chars_keeps_newlines_and_tabs():
    assert strip_control_chars('a\tb\nc\x00\x1b[1m[ctrl]') == 'a\tb\nc'


def test_result_message_of_only_control_noise_gets_default():
    assert sanitize_result_message('\x07\x1b<ctrl07>\x00', True) == DEFAULT_SUCCESS_MESSAGE
    assert sanitize_result_message(None, False) == DEFAULT_FAILURE_MESSAGE


def test_result_message_keeps_legible_text():
    assert sanitize_result_message('\x07Found <ctrl12>the\x00 pricing page\n', True) == 'Found the pricing page'
