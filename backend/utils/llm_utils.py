# backend/utils/llm_utils.py
import time
import logging
import google.generativeai as genai
from google.api_core import exceptions
from typing import Any, Sequence, Union, Optional

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (exceptions.ServiceUnavailable, exceptions.InternalServerError)


def call_gemini_with_retries(
    model_input: Union[str, Sequence[Any]],
    model_instance: genai.GenerativeModel,
    model_name: str,
    request_options: Optional[dict] = None,
    max_retries: int = 3,
    base_delay_seconds: float = 2,
    ) -> Any:
    """
    Calls a Gemini model with retries for non-streaming requests.
    Transient 5xx errors are retried with exponential backoff; anything else
    (including blocked prompts) is raised immediately.
    """
    if not model_instance:
        raise ValueError(f"{model_name} model instance not provided.")
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1.")

    logger.info(f"Sending request to Model: {model_name} (Non-Streaming w/ Retries)...")
    last_exception = None

    for attempt in range(max_retries):
        try:
            logger.info(f"Attempt {attempt + 1}/{max_retries} to call {model_name}...")
            response = model_instance.generate_content(
                model_input,
                request_options=request_options or {}
            )
            feedback = getattr(response, 'prompt_feedback', None)
            if feedback is not None and getattr(feedback, 'block_reason', None):
                logger.error(f"Call blocked by API. Reason: {feedback.block_reason}")
                raise RuntimeError(f"API Call Blocked: {feedback.block_reason}")

            logger.info(f"Call successful on attempt {attempt + 1}.")
            return response

        except RETRYABLE_ERRORS as e:
            last_exception = e
            logger.warning(f"Attempt {attempt + 1} failed with transient error: {e}. Retrying after delay...")

        if attempt < max_retries - 1:
            delay = base_delay_seconds * (2 ** attempt)
            logger.info(f"Waiting {delay} seconds before next retry...")
            time.sleep(delay)

    logger.error(f"Call failed after {max_retries} attempts. Last error: {last_exception}")
    raise last_exception
