"""
Исключения оркестратора ликвидности.

- RemoteRejection: транзакция отклонена или откатилась (revert)
- DeadlineExpired: транзакция попала в блок после своего deadline
- ConfirmationTimeout: транзакция не подтвердилась за отведённое время
- InvariantViolation: локально рассчитанное значение нарушает инвариант
- StepFailed: обёртка оркестратора с именем упавшего шага
"""

from typing import Optional


class OrchestrationError(Exception):
    """Базовое исключение для всех ошибок оркестрации."""


class RemoteRejection(OrchestrationError):
    """Удалённый контракт отклонил или откатил транзакцию."""

    def __init__(self, message: str, tx_hash: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash
        self.reason = reason


class DeadlineExpired(RemoteRejection):
    """Транзакция отклонена контрактом: deadline уже прошёл."""


class ConfirmationTimeout(OrchestrationError):
    """Транзакция отправлена, но не подтверждена за timeout секунд."""

    def __init__(self, message: str, tx_hash: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(message)
        self.tx_hash = tx_hash
        self.timeout = timeout


class InvariantViolation(OrchestrationError, ValueError):
    """Нарушен локальный инвариант (порядок пары, диапазон тиков и т.п.)."""


class StepFailed(OrchestrationError):
    """Шаг оркестрации завершился ошибкой. Причина доступна в __cause__."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        self.cause = cause
        super().__init__(f"Step '{step}' failed: {cause}")
        self.__cause__ = cause
