"""Process-wide request counters."""
import threading
from contextlib import contextmanager


def _usage_value(usage, key):
    if usage is None:
        return None
    if isinstance(usage, dict):
        return usage.get(key)
    return getattr(usage, key, None)


def _as_int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class Metrics:
    """Best-effort counters read by the diagnostics view.

    Updates take a lock because the Flask server handles requests on
    separate threads; none of these numbers feed back into request handling.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.request_count = 0
        self.total_request_time = 0.0
        self.max_request_time = 0.0
        self.current_parallel_requests = 0
        self.max_parallel_requests = 0
        self.max_prompt_tokens = 0
        self.max_cached_tokens = 0
        self.max_completion_tokens = 0
        self.error_count = 0

    @contextmanager
    def track_in_flight(self):
        """Count the enclosed block as one in-flight upstream call."""
        with self._lock:
            self.current_parallel_requests += 1
            if self.current_parallel_requests > self.max_parallel_requests:
                self.max_parallel_requests = self.current_parallel_requests
        try:
            yield
        finally:
            with self._lock:
                self.current_parallel_requests -= 1

    def record_request(self, duration: float) -> None:
        with self._lock:
            self.request_count += 1
            self.total_request_time += duration
            if duration > self.max_request_time:
                self.max_request_time = duration

    def record_usage(self, usage) -> None:
        """Raise token highwater marks from a chat or responses usage block."""
        if usage is None:
            return
        prompt = _usage_value(usage, "prompt_tokens")
        completion = _usage_value(usage, "completion_tokens")
        details = _usage_value(usage, "prompt_tokens_details")
        if prompt is None:
            prompt = _usage_value(usage, "input_tokens")
            completion = _usage_value(usage, "output_tokens")
            details = _usage_value(usage, "input_tokens_details")
        cached = _usage_value(details, "cached_tokens")
        prompt, cached, completion = _as_int(prompt), _as_int(cached), _as_int(completion)
        with self._lock:
            self.max_prompt_tokens = max(self.max_prompt_tokens, prompt)
            self.max_cached_tokens = max(self.max_cached_tokens, cached)
            self.max_completion_tokens = max(self.max_completion_tokens, completion)

    def record_error(self) -> None:
        with self._lock:
            self.error_count += 1

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "request_count": self.request_count,
                "total_request_time": round(self.total_request_time, 3),
                "average_request_time": round(
                    self.total_request_time / self.request_count if self.request_count else 0.0, 3
                ),
                "max_request_time": round(self.max_request_time, 3),
                "current_parallel_requests": self.current_parallel_requests,
                "max_parallel_requests": self.max_parallel_requests,
                "max_prompt_tokens": self.max_prompt_tokens,
                "max_cached_tokens": self.max_cached_tokens,
                "max_completion_tokens": self.max_completion_tokens,
                "error_count": self.error_count,
            }
