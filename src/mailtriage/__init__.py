"""Mail triage: polls a mailbox and loops LLM clarifications inside email threads."""
