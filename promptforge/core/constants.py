from __future__ import annotations

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_APP = "app"

MODE_QUICK = "quick"
MODE_GUIDED = "guided"
GENERATION_MODES = (MODE_QUICK, MODE_GUIDED)

MIN_TASK_LENGTH = 3
MAX_TASK_LENGTH = 4000
HISTORY_FIELD_LIMIT = 4000
DEFAULT_HISTORY_PAGE_SIZE = 20
DEFAULT_TEMPERATURE = 0.4

COMMAND_HELP = "/help"
COMMAND_CLEAR = "/clear"
COMMAND_RESTORE = "/restore"
COMMAND_DISCARD = "/discard"
COMMAND_NEW = "/new"
COMMAND_HISTORY = "/history"
COMMAND_USE = "/use"
COMMAND_MODE = "/mode"
COMMAND_EDIT = "/edit"
COMMAND_BACK = "/back"
COMMAND_SKIP = "/skip"
COMMAND_REVISE = "/revise"
COMMAND_APPROVE = "/approve"
COMMAND_STOP = "/stop"
COMMAND_LOGIN = "/login"
COMMAND_EXIT = "/exit"

MESSAGE_WELCOME = "Describe your task and what kind of AI answer you expect."
MESSAGE_WELCOME_FRESH = (
    "Starting fresh. Describe your task and what kind of AI answer you expect."
)
MESSAGE_HISTORY_CLEARED = "History cleared. Use /restore to bring it back."
MESSAGE_NOTHING_TO_RESTORE = "Nothing to restore."
MESSAGE_GENERATING_WAIT = "Please wait for the AI to finish before submitting."
MESSAGE_AI_STOPPED = "Stopped AI generation for the current task."
MESSAGE_QUESTION_CONSENT = (
    "Before I craft your prompt, would you like to answer 3 quick questions "
    "to improve the context? (sharpen/generate)"
)
MESSAGE_CHOOSE_CONSENT = "Choose an option below to continue."
MESSAGE_PROMPT_READY = "Here is a prompt you can use or edit:"
MESSAGE_PROMPT_APPROVED = (
    "Prompt approved. Start a new task with /discard or keep updating this prompt."
)
MESSAGE_TASK_TOO_SHORT = "Add a bit more detail (at least a few words) before generating."
MESSAGE_TASK_TOO_LONG = "Task is too long (max ~4000 characters). Trim it down and try again."
MESSAGE_REVISE = (
    "Revise the task or clarifying answers. Update the task and press Enter to continue."
)
MESSAGE_QUICK_MODE = (
    "Switched to Quick Start. I will generate without clarifying or preference questions."
)
MESSAGE_GUIDED_MODE = (
    "Switched to Guided Build. I will ask a few clarifying and preference questions "
    "before generating."
)
MESSAGE_SYSTEM_ERROR = "System error. Please try again soon."
MESSAGE_QUOTA = "Plan limit reached. Quota resets next cycle."
MESSAGE_RATE_LIMITED = "Too many requests. Please wait and try again."

EMPTY_TRANSCRIPT_MESSAGES = frozenset(
    {MESSAGE_WELCOME, MESSAGE_WELCOME_FRESH, MESSAGE_HISTORY_CLEARED}
)

CONSENT_OPTIONS = ("Generate now", "Sharpen first")
