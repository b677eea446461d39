"""Per-conversation single-flight control loop."""

from __future__ import annotations

import asyncio
import threading
from enum import Enum
from typing import Callable

from loguru import logger

from picobot.agent.mailbox import PendingMailbox
from picobot.agent.messages import ROLE_ASSISTANT, Message, Thread, unanswered_tool_calls
from picobot.agent.round import GenerationRound
from picobot.agent.tools.registry import ToolRegistry
from picobot.threads.store import ThreadStore

ToolsFactory = Callable[[str, str], ToolRegistry]


class LoopState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


def is_turn_complete(messages: list[Message]) -> bool:
    """
    True when there is nothing left for the model to do.

    That is an empty history, or a history ending in an assistant message
    whose tool calls (if any) have all been answered.
    """
    if not messages:
        return True
    last = messages[-1]
    if last.role != ROLE_ASSISTANT:
        return False
    return not unanswered_tool_calls([last])


class ThreadScheduler:
    """
    Runs at most one loop per conversation id.

    Each iteration loads the thread, merges everything waiting in the
    mailbox, and either stops at a turn boundary or runs one generation
    round and saves the result. Different conversation ids never wait on
    each other.
    """

    def __init__(
        self,
        store: ThreadStore,
        generation: GenerationRound,
        tools_factory: ToolsFactory,
        system_prompt: str | Callable[[], str] = "",
        mailbox: PendingMailbox | None = None,
    ):
        self.store = store
        self.generation = generation
        self.tools_factory = tools_factory
        self.system_prompt = system_prompt
        self.mailbox = mailbox or PendingMailbox()
        self._states: dict[str, LoopState] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._lock = threading.Lock()

    def state(self, conversation_id: str) -> LoopState:
        with self._lock:
            return self._states.get(conversation_id, LoopState.IDLE)

    def enqueue(self, conversation_id: str, message: Message) -> None:
        """Queue a message for the conversation's next loop iteration."""
        self.mailbox.enqueue(conversation_id, message)

    def trigger(self, conversation_id: str, channel: str) -> asyncio.Task[None] | None:
        """
        Start the loop for a conversation in the background.

        Returns None when a loop is already running; that loop picks up
        anything newly queued at its next iteration.
        """
        if not self._acquire(conversation_id):
            logger.debug(f"Thread loop already running for {conversation_id}")
            return None

        try:
            task = asyncio.create_task(
                self._drive(conversation_id, channel), name=f"thread-loop:{conversation_id}"
            )
        except RuntimeError:
            self._release(conversation_id)
            raise
        self._tasks[conversation_id] = task
        task.add_done_callback(lambda t: self._on_loop_done(conversation_id, t))
        return task

    async def run(self, conversation_id: str, channel: str) -> None:
        """
        Run the loop in the current task until the turn completes.

        Returns immediately if a loop is already running. Failures propagate.
        """
        if not self._acquire(conversation_id):
            return
        await self._drive(conversation_id, channel)

    async def wait_idle(self, conversation_id: str) -> None:
        """Wait for the background loop of a conversation, if any, to finish."""
        task = self._tasks.get(conversation_id)
        if task is not None:
            await asyncio.wait({task})

    def _acquire(self, conversation_id: str) -> bool:
        with self._lock:
            if self._states.get(conversation_id) is LoopState.RUNNING:
                return False
            self._states[conversation_id] = LoopState.RUNNING
            return True

    def _release(self, conversation_id: str) -> None:
        with self._lock:
            self._states.pop(conversation_id, None)

    def _release_if_drained(self, conversation_id: str) -> bool:
        # Checked under the state lock so an enqueue racing the exit either
        # lands before this check or sees the id Idle and triggers anew.
        with self._lock:
            if self.mailbox.pending_count(conversation_id):
                return False
            self._states.pop(conversation_id, None)
            return True

    def _system(self) -> str:
        if callable(self.system_prompt):
            return self.system_prompt()
        return self.system_prompt

    async def _drive(self, conversation_id: str, channel: str) -> None:
        logger.info(f"Thread loop started for {conversation_id}")
        released = False
        rounds = 0
        try:
            while True:
                thread = self.store.load(conversation_id) or Thread(
                    id=conversation_id, channel=channel
                )
                drained = self.mailbox.drain_and_clear(conversation_id)
                thread.messages.extend(drained)

                try:
                    if is_turn_complete(thread.messages):
                        if drained:
                            self.store.save(conversation_id, thread)
                    else:
                        tools = self.tools_factory(conversation_id, thread.channel)
                        thread.messages = await self.generation.run(
                            conversation_id, self._system(), thread.messages, tools
                        )
                        self.store.save(conversation_id, thread)
                        rounds += 1
                        continue
                except Exception:
                    # Unsaved input goes back ahead of newer arrivals.
                    self.mailbox.requeue_front(conversation_id, drained)
                    raise

                if self._release_if_drained(conversation_id):
                    released = True
                    break
        except Exception as e:
            logger.error(f"Thread loop for {conversation_id} aborted: {e}")
            raise
        finally:
            if not released:
                self._release(conversation_id)

        logger.info(f"Thread loop for {conversation_id} idle after {rounds} round(s)")

    def _on_loop_done(self, conversation_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(conversation_id) is task:
            del self._tasks[conversation_id]
        if task.cancelled():
            logger.warning(f"Thread loop for {conversation_id} was cancelled")
            return
        # Already logged in _drive; retrieving it marks the exception as handled.
        task.exception()
