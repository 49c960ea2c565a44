import json
import logging
import re
import time
from typing import Any, Callable

from openai import OpenAI

logger = logging.getLogger(__name__)

ASSISTANT_NAME = "Videa Video Idea Generator"
ASSISTANT_DESCRIPTION = (
    "An assistant that generates viral video ideas based on YouTube trends and user preferences"
)
ASSISTANT_INSTRUCTIONS = """You are an AI assistant for Videa, an application that helps content creators generate viral video ideas based on trending topics and data analysis.

Your role is to create original, engaging video concepts that have viral potential. You should:
1. Analyze trending topics and data
2. Generate creative ideas that leverage current trends
3. Provide specific, actionable video concepts
4. Format your responses as clean JSON only
5. Always respond with a well-structured idea that includes title, concept, hashtags, and other required fields
6. Never include text outside the JSON response

When improving ideas, focus on the user's specific feedback while maintaining the strengths of the original concept."""

# Value shipped in the example env file; never a real assistant.
PLACEHOLDER_ASSISTANT_ID = "asst_YourAssistantID"

RUN_POLL_INTERVAL_SECONDS = 1.0
RUN_TIMEOUT_SECONDS = 60.0
TERMINAL_RUN_STATUSES = frozenset({"completed", "failed", "cancelled", "expired"})

_CODE_FENCE_RE = re.compile(r"```json\s*|\s*```")


class AssistantRunError(Exception):
    pass


class AssistantRunTimeout(AssistantRunError):
    pass


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE_RE.sub("", text or "").strip()


def parse_json_object(text: str) -> dict[str, Any]:
    """Decode an LLM reply that should be a single JSON object, possibly fenced."""
    parsed = json.loads(strip_code_fences(text))
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def poll_run(
    retrieve: Callable[[], Any],
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
    timeout: float = RUN_TIMEOUT_SECONDS,
    interval: float = RUN_POLL_INTERVAL_SECONDS,
):
    """Poll an assistant run until it reaches a terminal status or ``timeout`` elapses."""
    started = clock()
    run = retrieve()
    while run.status not in TERMINAL_RUN_STATUSES:
        if clock() - started > timeout:
            raise AssistantRunTimeout("Timeout waiting for response")
        sleep(interval)
        run = retrieve()
    return run


def latest_assistant_text(messages: Any) -> str:
    """Text of the newest assistant message in a thread message page (newest first)."""
    for message in getattr(messages, "data", None) or []:
        if message.role != "assistant":
            continue
        for block in message.content or []:
            if getattr(block, "type", None) == "text":
                value = block.text.value
                if value:
                    return value
        break
    raise AssistantRunError("Empty response from assistant")


class LLMClient:
    """Stateless completions plus the stateful assistant-thread protocol."""

    def __init__(
        self,
        client: Any = None,
        model: str = "gpt-4o-mini",
        assistant_model: str = "gpt-4-turbo-preview",
        assistant_id: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1500,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        run_timeout: float = RUN_TIMEOUT_SECONDS,
        poll_interval: float = RUN_POLL_INTERVAL_SECONDS,
        client_factory: Callable[[], Any] | None = None,
    ):
        self._client = client
        self.client_factory = client_factory or OpenAI
        self.model = model
        self.assistant_model = assistant_model
        self.assistant_id = assistant_id
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.clock = clock
        self.sleep = sleep
        self.run_timeout = run_timeout
        self.poll_interval = poll_interval

    @classmethod
    def from_settings(cls, settings) -> "LLMClient":
        if not settings.openai_api_key:
            logger.warning("OPENAI_API_KEY is not set, idea generation will fail")
        return cls(
            model=settings.openai_model,
            assistant_model=settings.openai_assistant_model,
            assistant_id=settings.openai_assistant_id,
            client_factory=lambda: OpenAI(api_key=settings.openai_api_key),
        )

    @property
    def client(self):
        # Built on first use so a missing key only breaks the LLM calls.
        if self._client is None:
            self._client = self.client_factory()
        return self._client

    def complete(self, prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        return response.choices[0].message.content or ""

    def ensure_assistant(self) -> str:
        """Reuse the known assistant when it still exists, otherwise create one."""
        known = self.assistant_id
        if known and known != PLACEHOLDER_ASSISTANT_ID:
            try:
                return self.client.beta.assistants.retrieve(known).id
            except Exception as exc:
                logger.warning("Could not find assistant %s, will create a new one: %s", known, exc)

        logger.info("Creating new OpenAI assistant: %s", ASSISTANT_NAME)
        assistant = self.client.beta.assistants.create(
            name=ASSISTANT_NAME,
            description=ASSISTANT_DESCRIPTION,
            model=self.assistant_model,
            instructions=ASSISTANT_INSTRUCTIONS,
        )
        logger.info("Created assistant: %s", assistant.id)
        self.assistant_id = assistant.id
        return assistant.id

    def run_assistant(self, prompt: str) -> str:
        assistant_id = self.ensure_assistant()
        threads = self.client.beta.threads
        thread = threads.create()
        threads.messages.create(thread_id=thread.id, role="user", content=prompt)
        run = threads.runs.create(thread_id=thread.id, assistant_id=assistant_id)

        final = poll_run(
            lambda: threads.runs.retrieve(run.id, thread_id=thread.id),
            clock=self.clock,
            sleep=self.sleep,
            timeout=self.run_timeout,
            interval=self.poll_interval,
        )
        if final.status != "completed":
            raise AssistantRunError(f"Run failed with status: {final.status}")

        messages = threads.messages.list(thread_id=thread.id, order="desc")
        return latest_assistant_text(messages)
