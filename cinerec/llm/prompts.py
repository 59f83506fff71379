"""Prompt templates for the movie recommendation model."""

from cinerec.core.contracts import Candidate, HistoryEntry

SYSTEM_PROMPT = (
    "You are a movie recommendation assistant for a cinema. Based on user's viewing "
    "history and upcoming movies, recommend ONE movie that would best suit this user. "
    "Respond ONLY with valid JSON in this exact format: "
    '{"item_id": "<id>", "item_title": "<title>", '
    '"reason": "<personalized explanation>", "confidence_score": <0.0-1.0>}. '
    "Do not include any other text."
)

NO_HISTORY_LINE = "No previous viewing history available."

CLOSING_INSTRUCTION = (
    "Please recommend ONE movie from the upcoming list that would best suit this user "
    "based on their history. Provide a personalized reason for your recommendation."
)


def build_prompt(history: list[HistoryEntry], candidates: list[Candidate]) -> str:
    """Render the user-role prompt; identical inputs always yield identical text."""
    lines = ["User's viewing history:"]
    if not history:
        lines.append(NO_HISTORY_LINE)
    else:
        lines.extend(f"- {entry.title} (Rating: {entry.rating:.1f}/10)" for entry in history)

    lines.append("")
    lines.append("Upcoming movies:")
    lines.extend(
        f"- ID: {c.movie_id}, Title: {c.title}, Description: {c.description}, "
        f"Rating: {c.rating:.1f}/10"
        for c in candidates
    )

    lines.append("")
    lines.append(CLOSING_INSTRUCTION)
    return "\n".join(lines)
