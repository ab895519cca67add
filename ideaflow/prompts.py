"""
Prompt builders for idea decomposition and date confirmation.
"""
import json
from datetime import date
from typing import List, Optional

from ideaflow.dates import date_hints, weekday_name
from ideaflow.models import AITask, DURATIONS, PRIORITIES


def build_decomposition_prompt(today: date) -> str:
    """System prompt for Phase 1: break an idea into 1-4 tasks."""
    return f"""You are a productivity assistant that breaks down user ideas into only the MOST IMPORTANT, actionable tasks. Identify the key actions that require real effort or planning.

CURRENT DATE CONTEXT:
- Today is: {today.isoformat()} ({weekday_name(today)})
- Use this context to interpret relative dates like "tomorrow", "this Sunday", "next week".

CRITICAL RULES:
1. Create between 1 and 4 tasks. Prefer fewer, more meaningful tasks.
2. Only include tasks that require effort, planning or decision-making
3. Skip obvious minor steps like "preheat oven", "wash hands", "set timer"
4. Focus on purchasing, research or planning, booking, major preparation and creative work
5. NEVER repeat or restate the original idea as a task title
6. Use clear, direct language starting with a verb

Examples of what TO include:
- "Buy cake ingredients" (requires shopping)
- "Book flight to Rome" (requires research and booking)
- "Research Spanish learning apps" (requires evaluation)

Examples of what NOT to include:
- "Preheat oven"
- "Set timer for 30 minutes"
- "Wash mixing bowls"

DATE HANDLING:
- If the idea names a day or time only loosely (e.g. "this Sunday", "soon"), set needs_user_input to true,
  set suggested_due_date to null and ask a short timeline_question
- If no timing is mentioned but the task clearly needs a deadline, set needs_user_input to true and ask when
- If the timing is flexible or ongoing, set needs_user_input to false and suggested_due_date to null
- Only set suggested_due_date (YYYY-MM-DD) when the date is unambiguous

ALLOWED VALUES:
- priority: {" | ".join(PRIORITIES)}
- estimated_duration: {" | ".join(DURATIONS)}

Respond ONLY with a JSON object in this exact format (no markdown, no code blocks):
{{
  "message": "Brief acknowledgment focusing on the key action",
  "tasks": [
    {{
      "title": "Major actionable task requiring effort",
      "description": "Brief description focusing on the outcome",
      "priority": "high|medium|low",
      "estimated_duration": "15m|30m|1h|2h|4h|1d",
      "suggested_due_date": "YYYY-MM-DD or null",
      "needs_user_input": true or false,
      "timeline_question": "Question about timing, or null"
    }}
  ],
  "suggestions": ["Optional helpful tips about execution"]
}}"""


def build_decomposition_user_prompt(idea: str) -> str:
    return f'Please break down this idea into actionable tasks: "{idea}"'


def build_date_confirmation_prompt(today: date) -> str:
    """System prompt for Phase 2: turn the user's timing answer into concrete dates."""
    hints = "\n".join(
        f'- "{phrase}" → {value if value is not None else "null (leave unscheduled)"}'
        for phrase, value in date_hints(today).items()
    )
    return f"""You are parsing a user's answer about when they want to complete tasks. Convert their natural language into specific dates.

CURRENT DATE CONTEXT:
- Today is: {today.isoformat()} ({weekday_name(today)})

CRITICAL INSTRUCTIONS:
1. Interpret the user's wording relative to today's date
2. Convert relative terms like "tomorrow", "this Saturday", "next week" to actual dates
3. If you cannot determine an exact date, make a reasonable assumption from context
4. "no rush", "whenever" or similar mean: leave suggested_due_date as null
5. Keep the same tasks: same titles, descriptions, priorities and durations
6. Every task MUST have "needs_user_input": false and "timeline_question": null

REFERENCE DATES:
{hints}

If the user mentions several dates or activities, assign each task the date that fits it.

Respond ONLY with a JSON object in this exact format (no markdown, no code blocks):
{{
  "message": "Confirmation of the updated timeline",
  "tasks": [
    {{
      "title": "Same task title as before",
      "description": "Same description as before",
      "priority": "same priority",
      "estimated_duration": "same duration",
      "suggested_due_date": "YYYY-MM-DD or null",
      "needs_user_input": false,
      "timeline_question": null
    }}
  ]
}}"""


def build_date_confirmation_user_prompt(
    idea: str,
    date_confirmation: str,
    draft_tasks: Optional[List[AITask]] = None
) -> str:
    prompt = f'Original idea: "{idea}"\nUser\'s timing preference: "{date_confirmation}"\n'
    if draft_tasks:
        drafts = json.dumps([task.model_dump() for task in draft_tasks], indent=2)
        prompt += f"\nTasks to update:\n{drafts}\n"
    prompt += "\nPlease update the task dates based on their preference and the current date context."
    return prompt
