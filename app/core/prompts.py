"""
Centralized prompt management for Campus Assist.

Prompts and canned replies are organized by domain and purpose and rendered
with Jinja2, so wording can be changed or overridden without touching the
chat flow.
"""

from typing import Dict
import jinja2
import logging

logger = logging.getLogger(__name__)

_template_env = jinja2.Environment(
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=jinja2.StrictUndefined,
)

STYLE_INSTRUCTIONS: Dict[str, str] = {
    "formal": "Respond in a formal, professional manner.",
    "friendly": "Respond in a warm, friendly, and approachable manner.",
    "professional": "Respond in a professional but conversational tone.",
}


def style_instruction(response_style: str) -> str:
    return STYLE_INSTRUCTIONS.get(response_style, STYLE_INSTRUCTIONS["professional"])


def assistant_kind(assistant_name: str) -> str:
    """Coarse assistant category used to pick contact guidance: residential, financial or general"""
    name = assistant_name.lower()
    if any(word in name for word in ("residential", "housing", "dorm")):
        return "residential"
    if "financial" in name or "aid" in name:
        return "financial"
    return "general"


class PromptRegistry:
    """Registry for managing and accessing prompts throughout the application."""

    PROMPTS = {
        "chat": {
            "embedded_system": """
You are {{ assistant_name }}, a helpful assistant for student support.

CRITICAL: I am providing you with OFFICIAL UNIVERSITY POLICY INFORMATION below that you MUST use to answer student questions. This information is from the official student handbook and contains current, authoritative policies.

{{ context }}

INSTRUCTIONS:
- Use the policy information provided above to answer questions
- Provide specific details and quote exact policy language when relevant
- If the information directly answers the student's question, provide a complete answer
- Be helpful and specific using the official information provided
- {{ style_instruction }}

Do not say you don't have information if the answer is clearly provided in the policy content above.
""",
            "rag_system": """
You are {{ assistant_name }}, {{ welcome_message or "a helpful assistant for student support" }}

You have access to official university documents through your knowledge base. Use this information to answer student questions accurately and helpfully.

{{ style_instruction }}

Provide specific, detailed answers based on the official university policies and information available to you.
""",
            "embedded_user_message": (
                "Based on the official university policy information provided in the system message, "
                "please answer this question: {{ user_message }}"
            ),
        },
        "fallback": {
            "document_system_unavailable": """
I'm currently experiencing technical difficulties connecting to my document system. I'm designed to provide information from official university policies and handbooks, but I'm having trouble accessing those documents right now.

For help with your question about "{{ user_message }}", I recommend:
{% if kind == "residential" %}
1. Contacting Residential Life directly for housing and dorm questions
2. Visiting the Residential Life website for housing policies
3. Speaking with your Resident Advisor (RA) or House Director
{% elif kind == "financial" %}
1. Contacting the Office of Student Accounts directly for financial aid and refund questions
2. Visiting the Financial Aid office for personalized assistance
3. Checking your financial aid status online
{% else %}
1. Visiting the appropriate university office for your specific question
2. Checking the official student handbook online
3. Contacting general student support services
{% endif %}

I apologize for the technical difficulties. Once my document system is working, I'll be able to provide you with specific information from the official university policies and procedures.
{% if welcome_message %}

{{ welcome_message }}
{% endif %}
""",
            "no_documents": (
                "Hello! I'm {{ assistant_name }}. I don't currently have specific information about "
                "\"{{ user_message }}\" in my knowledge base. Please contact our support team who can provide "
                "you with detailed, personalized assistance for your inquiry."
            ),
            "contextual": (
                "Hello! I'm {{ assistant_name }}. Based on the information available in our knowledge base, "
                "here's what I can share about your question: \"{{ relevant_info }}...\" For more detailed "
                "assistance with \"{{ user_message }}\", I recommend contacting our support team who can "
                "provide comprehensive help tailored to your specific needs."
            ),
        },
    }

    @classmethod
    def get_prompt(cls, domain: str, prompt_name: str, **kwargs) -> str:
        """
        Get a prompt by domain and name, with optional variable substitution.

        Args:
            domain: The domain the prompt belongs to
            prompt_name: The specific prompt identifier
            **kwargs: Variables to substitute in the prompt template

        Returns:
            The rendered prompt, stripped of surrounding whitespace

        Raises:
            KeyError: If the prompt is not registered
        """
        if domain not in cls.PROMPTS or prompt_name not in cls.PROMPTS[domain]:
            logger.error(f"Prompt '{domain}.{prompt_name}' not found in prompt registry")
            raise KeyError(f"{domain}.{prompt_name}")

        template = _template_env.from_string(cls.PROMPTS[domain][prompt_name])
        return template.render(**kwargs).strip()

    @classmethod
    def register_prompt(cls, domain: str, prompt_name: str, prompt_template: str) -> None:
        """Register a new prompt or replace an existing one."""
        cls.PROMPTS.setdefault(domain, {})[prompt_name] = prompt_template
        logger.info(f"Registered prompt '{domain}.{prompt_name}'")


get_prompt = PromptRegistry.get_prompt
register_prompt = PromptRegistry.register_prompt
