"""AI service — LLM helpers for quote authoring.

Actions:
- suggest_scope:      device list + quantities for a building
- estimate_devices:   NFPA 72 spacing-based device counts
- generate_narrative: scope-of-work prose for the proposal

The LLM is asked for JSON only; the parsed object is returned as-is.
Any HTTP or parse failure raises UpstreamFailure with a generic message
(the raw response is logged, never returned).
"""

import json
import logging
import re

import requests
from flask import current_app

from fireops.errors import UpstreamFailure, ValidationFailed

logger = logging.getLogger(__name__)

ACTIONS = ["suggest_scope", "estimate_devices", "generate_narrative"]

CODE_FENCE_RE = re.compile(r"```(?:json)?\n?")

SUGGEST_SCOPE_SYSTEM = (
    "You are a fire alarm system design expert for {company}. "
    "You help estimate fire alarm system requirements based on building information. "
    "Always respond with valid JSON only, no markdown or explanation. "
    "Base your estimates on NFPA 72 requirements and local fire code."
)

SUGGEST_SCOPE_USER = """Given this building information:
- Building Type: {building_type}
- Square Footage: {square_footage}
- Number of Floors: {floors}
- Existing System: {existing_system}
- Notes: {notes}
- Quote Type: {quote_type}

Suggest appropriate fire alarm devices and quantities. Return JSON in this exact format:
{{
  "suggestions": [
    {{"category": "Initiating Devices", "name": "Smoke Detector - Addressable", "quantity": 10, "reason": "Based on 900 sq ft coverage per detector"}}
  ],
  "notes": "Additional considerations or recommendations",
  "estimated_labor_hours": 24
}}"""

ESTIMATE_DEVICES_SYSTEM = (
    "You are a fire alarm system designer. Calculate device counts based on "
    "NFPA 72 spacing requirements.\n"
    "Smoke detectors: 900 sq ft coverage, 30 ft spacing\n"
    "Heat detectors: 50 ft spacing\n"
    "Horn/strobes: 75 dBA coverage, typically one per 4,000 sq ft or per floor\n"
    "Pull stations: At each exit\n"
    "Always respond with valid JSON only."
)

ESTIMATE_DEVICES_USER = """Calculate recommended device counts for:
- Square Footage: {square_footage}
- Floors: {floors}
- Building Type: {building_type}

Return JSON:
{{
  "devices": {{
    "smoke_detectors": {{"count": 0, "calculation": "explanation"}},
    "heat_detectors": {{"count": 0, "calculation": "explanation"}},
    "horn_strobes": {{"count": 0, "calculation": "explanation"}},
    "pull_stations": {{"count": 0, "calculation": "explanation"}},
    "duct_detectors": {{"count": 0, "calculation": "explanation"}}
  }},
  "labor_hours": 0,
  "notes": "any special considerations"
}}"""

NARRATIVE_SYSTEM = (
    "You are a professional proposal writer for {company}, a commercial fire "
    "alarm contractor. Write clear, professional scope narratives for fire alarm "
    "proposals. Keep it concise but thorough. Use industry terminology appropriately."
)

NARRATIVE_USER = """Write a professional scope of work narrative for this fire alarm project:

Building: {building_type} building
Notes: {notes}
Square Footage: {square_footage}
Floors: {floors}
Existing System: {existing_system}
Quote Type: {quote_type}
Equipment: {equipment}

Write 2-3 paragraphs describing the scope of work professionally. Include:
1. Overview of what will be installed/serviced
2. Key deliverables
3. Compliance statement (NFPA 72, local fire code)

Return JSON: {{"narrative": "your narrative text here"}}"""


def build_prompts(action, quote_type, site, existing_items=None):
    """Return (system_prompt, user_prompt) for an action."""
    site = site or {}
    company = current_app.config.get("COMPANY_NAME") or "our company"
    fields = {
        "building_type": site.get("building_type") or "commercial",
        "square_footage": site.get("square_footage") or "unknown",
        "floors": site.get("floors") or "1",
        "existing_system": site.get("existing_system") or "none",
        "notes": site.get("notes") or "none",
        "quote_type": quote_type or "new_installation",
    }

    if action == "suggest_scope":
        return SUGGEST_SCOPE_SYSTEM.format(company=company), SUGGEST_SCOPE_USER.format(**fields)

    if action == "estimate_devices":
        if fields["square_footage"] == "unknown":
            fields["square_footage"] = "5000"
        return ESTIMATE_DEVICES_SYSTEM, ESTIMATE_DEVICES_USER.format(**fields)

    if action == "generate_narrative":
        equipment = ", ".join(
            f"{item.get('quantity', 1)}x {item.get('name', '')}"
            for item in (existing_items or [])
        ) or "various fire alarm devices"
        return (
            NARRATIVE_SYSTEM.format(company=company),
            NARRATIVE_USER.format(equipment=equipment, **fields),
        )

    raise ValidationFailed(f"Invalid action. Must be one of: {', '.join(ACTIONS)}")


def parse_json_content(content):
    """Strip markdown code fences and parse the LLM's JSON reply."""
    cleaned = CODE_FENCE_RE.sub("", content).strip()
    return json.loads(cleaned)


def suggest(action, quote_type=None, site=None, existing_items=None):
    """Run one AI quote helper and return the parsed JSON object."""
    if action not in ACTIONS:
        raise ValidationFailed(f"Invalid action. Must be one of: {', '.join(ACTIONS)}")

    api_key = current_app.config.get("LLM_API_KEY")
    if not api_key:
        raise UpstreamFailure("AI service not configured")

    system_prompt, user_prompt = build_prompts(action, quote_type, site, existing_items)

    try:
        resp = requests.post(
            current_app.config["LLM_API_URL"],
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": current_app.config.get("LLM_MODEL", "gpt-4o-mini"),
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "temperature": 0.7,
                "max_tokens": 1000,
            },
            timeout=current_app.config.get("LLM_TIMEOUT", 30),
        )
        resp.raise_for_status()
        content = resp.json()["choices"][0]["message"]["content"]
    except (requests.RequestException, KeyError, IndexError, ValueError) as e:
        logger.error(f"LLM request failed for {action}: {e}")
        raise UpstreamFailure("AI service unavailable")

    if not content:
        raise UpstreamFailure("No response from AI")

    try:
        return parse_json_content(content)
    except ValueError:
        logger.error(f"Failed to parse AI response for {action}: {content[:500]}")
        raise UpstreamFailure("Invalid AI response format")
