"""Closed-loop refinement: generate, extract, validate, feed back, repeat."""

from __future__ import annotations

import logging
import time
from typing import Optional

from ..cancellation import CancellationToken, PlanningCancelled
from ..models.llm_client import CompletionRequest, CompletionResponse, LLMClient, LLMClientError
from ..validation.base import SchemaValidator
from .errors import CandidateValidationError, ExtractionError, IterationBudgetExceeded
from .extractor import Extractor
from .prompter import Prompter
from .session import Attempt, AttemptStatus, RefinementSession

__all__ = ["Generator"]

LOGGER = logging.getLogger(__name__)


class Generator:
    """Drive a ``RefinementSession`` to success or failure.

    Attempt 1 uses the planning prompt. Every later attempt uses the
    corrective prompt seeded with the previous attempt's candidate and only
    that attempt's violations. Transport retries happen inside the client;
    if they run out the session ends at once.
    """

    def __init__(
        self,
        client: LLMClient,
        prompter: Prompter,
        extractor: Extractor,
        validator: SchemaValidator,
        *,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ) -> None:
        self._client = client
        self._prompter = prompter
        self._extractor = extractor
        self._validator = validator
        self._max_tokens = max_tokens
        self._temperature = temperature

    def generate(
        self,
        session: RefinementSession,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> RefinementSession:
        """Run attempts until one validates or the budget is spent."""
        LOGGER.debug("starting graph generation for session %s", session.session_id)

        for index in range(1, session.max_iterations + 1):
            LOGGER.debug("starting iteration %d/%d", index, session.max_iterations)
            prompt = self._build_prompt(session, index)
            started = time.monotonic()
            try:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                response = self._client.complete(
                    CompletionRequest(
                        system_prompt=self._prompter.system_prompt,
                        user_prompt=prompt,
                        max_tokens=self._max_tokens,
                        temperature=self._temperature,
                        metadata={
                            "phase": "plan" if index == 1 else "fix",
                            "attempt": index,
                            "task": session.task,
                        },
                    ),
                    cancel=cancel,
                )
            except PlanningCancelled as error:
                LOGGER.info("session %s cancelled before attempt %d completed", session.session_id, index)
                session.fail(error, cancelled=True)
                return session
            except LLMClientError as error:
                LOGGER.error("LLM request failed on attempt %d, ending session: %s", index, error)
                session.fail(error)
                return session

            attempt = self._evaluate(index, prompt, response, time.monotonic() - started)
            session.record(attempt)
            if attempt.succeeded:
                LOGGER.info("graph validated on iteration %d", index)
                return session
            LOGGER.info("iteration %d failed: %s", index, attempt.log_line())

        last = session.last_attempt
        last_error = last.error if last is not None else None
        budget_error = IterationBudgetExceeded(session.max_iterations, last_error)
        budget_error.__cause__ = last_error
        session.fail(budget_error)
        return session

    def _build_prompt(self, session: RefinementSession, index: int) -> str:
        previous = session.last_attempt
        if index == 1 or previous is None:
            return self._prompter.build_planning_prompt(
                session.task,
                analysis=session.analysis,
                constraints=session.constraints,
                context=session.context,
            )
        previous_graph = previous.candidate if previous.candidate is not None else previous.response
        return self._prompter.build_error_fixing_prompt(
            session.task,
            previous_graph,
            previous.messages,
            previous.index,
        )

    def _evaluate(
        self,
        index: int,
        prompt: str,
        response: CompletionResponse,
        duration: float,
    ) -> Attempt:
        common = {
            "index": index,
            "prompt": prompt,
            "response": response.content,
            "tokens_used": response.tokens_used,
            "duration": duration,
        }
        try:
            extraction = self._extractor.extract(response.content)
        except ExtractionError as error:
            return Attempt(status=AttemptStatus.EXTRACTION_FAILED, error=error, **common)

        outcome = self._validator.validate(extraction.document.encode("utf-8"))
        if outcome.valid:
            return Attempt(
                status=AttemptStatus.SUCCEEDED,
                candidate=extraction.document,
                reasoning=extraction.reasoning,
                outcome=outcome,
                **common,
            )
        return Attempt(
            status=AttemptStatus.VALIDATION_FAILED,
            candidate=extraction.document,
            reasoning=extraction.reasoning,
            outcome=outcome,
            error=CandidateValidationError(outcome.messages),
            **common,
        )
