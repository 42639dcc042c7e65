"""
bgresearch.prompts — Versioned prompt templates for research summaries.

Prompt construction is a pure function of (query, template version): the
system text is constant per version and the query is only ever substituted
into the user wrapper, never rewritten.
"""

from __future__ import annotations

from bgresearch.core.models import PromptPair, Query

TEMPLATE_VERSION = "2024-06-v1"


_SYSTEM_PROMPT_V1 = """\
You are an expert business intelligence analyst specializing in company research, investments, and market analysis.

Your task is to provide comprehensive research summaries about companies and their activities in specific verticals or industries. Focus on:

1. 💰 **Investments & Acquisitions**: Recent investments, acquisitions, and funding rounds
2. 🤝 **Joint Ventures & Partnerships**: Strategic partnerships, joint ventures, and collaborative initiatives
3. 🏢 **Subsidiaries & Portfolio Companies**: Key subsidiaries and portfolio companies
4. 📈 **Market Position**: Market share, competitive position, and industry standing
5. 🚀 **Strategic Initiatives**: Key strategic initiatives and future plans
6. 📊 **Financial Highlights**: Revenue, growth metrics, and financial performance
7. 🌐 **Geographic Presence**: Global footprint and regional operations
8. 🔮 **Future Outlook**: Growth prospects and market opportunities

Format your response with clear sections, bullet points, and relevant emojis to make it engaging and easy to read. Provide specific examples, dollar amounts, dates, and company names where possible.

If you don't have specific information, clearly state what information is not available and suggest what types of sources might have more detailed information."""

_USER_PROMPT_V1 = """\
Please provide a comprehensive background research summary for the following query:

{query}

Please structure your response with clear headings and include relevant emojis to make it visually appealing and easy to scan."""


TEMPLATES: dict[str, tuple[str, str]] = {
    TEMPLATE_VERSION: (_SYSTEM_PROMPT_V1, _USER_PROMPT_V1),
}

# Focus areas in the order the system prompt lists them
FOCUS_AREAS: tuple[str, ...] = (
    "Investments & Acquisitions",
    "Joint Ventures & Partnerships",
    "Subsidiaries & Portfolio Companies",
    "Market Position",
    "Strategic Initiatives",
    "Financial Highlights",
    "Geographic Presence",
    "Future Outlook",
)


def build_prompt(query: Query, template_version: str = TEMPLATE_VERSION) -> PromptPair:
    """
    Pair the fixed analyst instructions with the user's query.

    ``str.replace`` is used rather than ``str.format`` so braces in the query
    are carried through verbatim.
    """
    template = TEMPLATES.get(template_version)
    if template is None:
        raise ValueError(
            f"Unknown prompt template: '{template_version}'. "
            f"Available: {', '.join(TEMPLATES)}"
        )
    system, user_wrapper = template
    return PromptPair(
        system=system,
        user=user_wrapper.replace("{query}", query.text),
        template_version=template_version,
    )
