"""
Agent definition for outbound task calls.

Builds the instruction text, tool list and voice for a call from its task. The
instructions are plain templates: a shared base describing how to conduct a
phone call plus a short appendix per task type.
"""

import json
from dataclasses import dataclass
from typing import List, Optional

from call_agent.config.constants import TOOL_END_CALL, TOOL_SEND_DTMF
from call_agent.models.calls import AgentConfig, OutboundTask, TaskType
from call_agent.models.conversation import ConversationHistory
from call_agent.models.openai_schemas import FunctionTool

AGENT_NAME = "outbound-task-agent"
CUSTOM_TASK_VOICE = "verse"
DEFAULT_VOICE = "sage"

SEND_DTMF_TOOL = FunctionTool(
    name=TOOL_SEND_DTMF,
    description=(
        "Send DTMF digit(s) to navigate IVR phone menus. "
        "Use when the system asks you to press a number."
    ),
    parameters={
        "type": "object",
        "properties": {
            "digits": {
                "type": "string",
                "pattern": "^[0-9*#w]+$",
                "description": 'Digits to send (0-9, *, #). Example: "1" or "123"',
            },
            "reason": {
                "type": "string",
                "description": (
                    'Why you are sending these digits. Example: "Selecting specialized services menu"'
                ),
            },
        },
        "required": ["digits", "reason"],
    },
)

END_CALL_TOOL = FunctionTool(
    name=TOOL_END_CALL,
    description=(
        "End the phone call when the task is complete and you have said goodbye to the person."
    ),
    parameters={
        "type": "object",
        "properties": {
            "reason": {
                "type": "string",
                "description": (
                    'Brief reason why the call is ending (e.g., "Task completed successfully")'
                ),
            },
        },
        "required": ["reason"],
    },
)

BASE_INSTRUCTIONS = """You are an AI assistant making an outbound phone call.

# Your Task
{prompt}

# Context
{context}

# Guidelines
- Be polite and professional
- Identify yourself as an AI assistant at the start
- Complete the task efficiently
- Confirm understanding before ending the call
- If the person wants to speak to a human, apologize and say you'll have someone call back
- Keep the call under 2 minutes unless the conversation naturally extends
- When an IVR system asks you to press a number, USE the send_dtmf tool immediately
- Example: "Press 1 for English" -> call send_dtmf with digits: "1"
- Do NOT just say "I'll press 1" - you MUST actually call the send_dtmf tool
- After sending DTMF, wait 2-3 seconds for the system to respond

# Call Structure
1. Greeting: "Hello, this is an AI assistant calling on behalf of the company."
2. Purpose: Clearly state why you're calling
3. Execute: Complete the task
4. Confirmation: Confirm the person understood
5. Closing: Thank them and say goodbye
6. **IMPORTANT**: After saying goodbye, immediately call the end_call tool to hang up the phone

# Example Opening
"Hello! This is an AI assistant.", followed by the purpose of the call."""

TASK_GUIDELINES = {
    TaskType.APPOINTMENT_REMINDER: """

# Appointment Reminder Guidelines
- Clearly state the appointment date and time
- Mention the location if provided
- Ask if they can confirm their attendance
- Offer to reschedule if they cannot attend
- Keep the call brief and to the point""",
    TaskType.SURVEY: """

# Survey Guidelines
- Ask each question clearly
- Wait for the response before moving to the next question
- Thank them for each answer
- Keep responses concise
- Summarize at the end""",
    TaskType.NOTIFICATION: """

# Notification Guidelines
- Deliver the message clearly and concisely
- Ensure key details are mentioned
- Ask if they have any questions
- Confirm they received the information
- End the call promptly""",
}

RECONNECTION_INSTRUCTIONS = """

# Conversation So Far
The call was briefly reconnected (for example after sending touch tones). This is
what has been said so far:

{transcript}

Continue the conversation naturally from where it left off. Do not greet the
person again or repeat what has already been said."""


@dataclass
class AgentDefinition:
    """Everything the realtime session needs to impersonate the agent."""

    name: str
    instructions: str
    voice: str
    tools: List[FunctionTool]


def generate_instructions(task: OutboundTask) -> str:
    instructions = BASE_INSTRUCTIONS.format(
        prompt=task.prompt,
        context=json.dumps(task.context or {}, indent=2),
    )
    return instructions + TASK_GUIDELINES.get(task.type, "")


def with_reconnection_context(task: OutboundTask, history: ConversationHistory) -> OutboundTask:
    """
    Copy of ``task`` whose prompt carries the prior transcript.

    The context is tagged so the session (and anyone inspecting the task) can
    tell the call was resumed rather than started fresh.
    """
    prompt = task.prompt + RECONNECTION_INSTRUCTIONS.format(transcript=history.render())
    context = dict(task.context or {})
    context["reconnection"] = True
    return task.model_copy(update={"prompt": prompt, "context": context})


def create_agent(task: OutboundTask, config: Optional[AgentConfig] = None) -> AgentDefinition:
    default_voice = CUSTOM_TASK_VOICE if task.type == TaskType.CUSTOM else DEFAULT_VOICE
    voice = config.voice if config and config.voice else default_voice
    return AgentDefinition(
        name=AGENT_NAME,
        instructions=generate_instructions(task),
        voice=voice,
        tools=[SEND_DTMF_TOOL, END_CALL_TOOL],
    )
