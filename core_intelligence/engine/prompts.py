"""
Prompt templates for the coaching pipeline.

Every template asks for JSON so results can go through
``parse_inference_response``.
"""

from typing import List

from domain.models import ChatTurn, MessagePart, SessionType


SUGGESTION_PROMPT = """You are an AI coaching assistant for a live {session_type}. Based on the following context, provide 3-5 helpful suggestions.

Context: {context}

Provide suggestions in the following categories:
1. Questions to ask
2. Key points to mention
3. Action items to note
4. Response improvements

Respond with a JSON array only. Each item is an object with:
  "type": "question" | "response" | "action" | "note",
  "content": the suggestion text,
  "priority": "low" | "medium" | "high"
"""


VISUAL_ANALYSIS_PROMPT = """Analyze this screen capture taken during a live {session_type} and provide intelligent feedback.

Please analyze:
1. What content/application is visible
2. Key UI elements and their purpose
3. Current user context and activity
4. Potential improvements or suggestions
5. Any issues or opportunities

Respond in JSON format:
{{
  "content": "Brief description of what's shown",
  "elements": ["list", "of", "key", "ui", "elements"],
  "context": "Current activity/situation",
  "suggestions": ["actionable", "suggestions"],
  "urgency": "low|medium|high",
  "feedback": [
    {{"type": "coaching|warning|suggestion|insight", "message": "Specific feedback message", "actionable": true}}
  ]
}}"""


FEEDBACK_PROMPT = """You are an AI coaching assistant. Analyze this real-time context and provide intelligent feedback.

RECENT TRANSCRIPT: "{transcript}"
SCREEN CONTENT: "{visual_content}"
CURRENT ACTIVITY: "{visual_context}"
SESSION TYPE: {session_type}
DURATION: {minutes} minutes

Provide contextual coaching based on:
1. Speaking patterns and communication effectiveness
2. Visual cues from screen content
3. Session type best practices
4. Time management and pacing

Respond in JSON format:
{{
  "type": "coaching|warning|suggestion|insight|action",
  "priority": "low|medium|high|urgent",
  "title": "Brief feedback title",
  "message": "Detailed feedback message",
  "actionable": true,
  "suggestions": ["specific", "actionable", "steps"],
  "topics": ["key", "topics", "so", "far"],
  "sentiment": 0.0
}}

"sentiment" is the overall tone of the conversation from -1 (negative) to 1 (positive)."""


def _label(session_type: SessionType) -> str:
    return session_type.value.replace("_", " ")


def build_suggestion_prompt(context: str, session_type: SessionType) -> str:
    return SUGGESTION_PROMPT.format(session_type=_label(session_type), context=context)


def build_visual_analysis_messages(
    image: bytes,
    mime_type: str,
    session_type: SessionType,
) -> List[ChatTurn]:
    """One user turn: the analysis instructions followed by the frame."""
    return [
        ChatTurn(
            role="user",
            parts=[
                MessagePart(type="text", text=VISUAL_ANALYSIS_PROMPT.format(session_type=_label(session_type))),
                MessagePart(type="image", image=image, mime_type=mime_type),
            ],
        )
    ]


def build_feedback_prompt(
    transcript: str,
    visual_content: str,
    visual_context: str,
    session_type: SessionType,
    elapsed_ms: int,
) -> str:
    return FEEDBACK_PROMPT.format(
        transcript=transcript or "(silence)",
        visual_content=visual_content,
        visual_context=visual_context,
        session_type=_label(session_type),
        minutes=max(0, elapsed_ms) // 60000,
    )
