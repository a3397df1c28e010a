from __future__ import annotations


class StreamingError(RuntimeError):
    """Базовая ошибка запроса к AI-провайдеру."""


class MissingAPIKeyError(StreamingError):
    def __init__(self, provider: str, env_var: str) -> None:
        super().__init__(f"Не задан API key для {provider} (env {env_var}).")
        self.provider = provider
        self.env_var = env_var


class RequestEncodingError(StreamingError):
    """Тело запроса не удалось сериализовать."""


class StreamTransportError(StreamingError):
    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
