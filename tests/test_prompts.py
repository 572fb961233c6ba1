"""Tests for the prompt registry."""
import jinja2
import pytest

from app.core.prompts import assistant_kind, get_prompt, register_prompt, style_instruction


@pytest.mark.parametrize("name, kind", [
    ("Residential Life Helper", "residential"),
    ("Dorm Questions", "residential"),
    ("Financial Aid Helper", "financial"),
    ("Registrar", "general"),
])
def test_assistant_kind(name, kind):
    assert assistant_kind(name) == kind


def test_unknown_style_falls_back_to_professional():
    assert style_instruction("sarcastic") == style_instruction("professional")


def test_document_system_unavailable_names_the_right_office():
    text = get_prompt(
        "fallback", "document_system_unavailable",
        user_message="Can I have a microwave?",
        kind="residential",
        welcome_message=None,
    )

    assert "Residential Life" in text
    assert "Office of Student Accounts" not in text
    assert '"Can I have a microwave?"' in text


def test_missing_variable_is_an_error():
    with pytest.raises(jinja2.UndefinedError):
        get_prompt("fallback", "no_documents", assistant_name="Helper")


def test_unknown_prompt():
    with pytest.raises(KeyError):
        get_prompt("chat", "does_not_exist")


def test_register_prompt():
    register_prompt("tests", "greeting", "Hi {{ name }}")
    assert get_prompt("tests", "greeting", name="Sam") == "Hi Sam"
