class CodeBatchError(Exception):
    code = "E_INTERNAL"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class InvalidArgumentError(CodeBatchError):
    code = "E_INVALID_ARGUMENT"


class NotFoundError(CodeBatchError):
    code = "E_NOT_FOUND"


class FailedPreconditionError(CodeBatchError):
    code = "E_FAILED_PRECONDITION"


class UnauthenticatedError(CodeBatchError):
    code = "E_UNAUTHENTICATED"


class InternalError(CodeBatchError):
    code = "E_INTERNAL"
