"""Prompt text for intent classification.

The model signals that it needs more information by starting its answer
with CLARIFICATION_MARKER. Anything else is an understood instruction.
"""

CLARIFICATION_MARKER = "Clarify:"

SYSTEM_PROMPT = (
    "You are an AI email assistant that reads analysis requests sent to a "
    "shared mailbox.\n"
    f"If the email is unclear and you need more information, respond with "
    f"'{CLARIFICATION_MARKER}' as the first word, followed by your question "
    "for the sender.\n"
    f"If you understand the instructions, respond normally without the "
    f"'{CLARIFICATION_MARKER}' prefix, restating the instructions to carry out."
)


def build_user_message(body: str) -> str:
    """Wrap an email body in the classification request."""
    return f"Analyze this email and extract instructions if possible.\n\nEmail: {body}"
