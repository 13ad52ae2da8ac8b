"""Direct notification API schemas."""

from pydantic import BaseModel, Field


class ExecutionNotice(BaseModel):
    """Fields shared by the execution notification shortcuts."""

    user_id: str = Field(..., min_length=1)
    execution_id: str = Field(..., min_length=1)
    test_name: str = Field(..., min_length=1)
    email: str | None = None


class ExecutionCompleteNotice(ExecutionNotice):
    result: str = Field(..., min_length=1, description="pass, fail or error")


class ExecutionFailureNotice(ExecutionNotice):
    error_message: str = Field(..., min_length=1)
