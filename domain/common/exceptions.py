"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class NotFoundException(BusinessException):
    """Referenced resource is absent."""

    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.NOT_FOUND,
        error_type: str = "NotFound",
        details: Optional[dict] = None,
    ):
        super().__init__(code=code, message=message, error_type=error_type, details=details)


class ConflictException(BusinessException):
    """Request conflicts with the current state of a resource."""

    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.CONFLICT,
        error_type: str = "Conflict",
        details: Optional[dict] = None,
    ):
        super().__init__(code=code, message=message, error_type=error_type, details=details)


class UserNotFoundException(NotFoundException):
    def __init__(self, user_id: Optional[str] = None):
        details = {"user_id": user_id} if user_id else None
        super().__init__(
            "User not found",
            code=BusinessCode.USER_NOT_FOUND,
            error_type="UserNotFound",
            details=details,
        )


class FileAssetNotFoundException(NotFoundException):
    def __init__(self, asset_id: Optional[str] = None):
        details = {"file_id": asset_id} if asset_id is not None else None
        super().__init__(
            "File not found",
            code=BusinessCode.FILE_NOT_FOUND,
            error_type="FileAssetNotFound",
            details=details,
        )


class AccessForbiddenException(BusinessException):
    def __init__(self, message: str = "Access denied", *, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="Forbidden",
            details=details,
        )


class PaymentRequiredException(BusinessException):
    def __init__(self, price: Decimal, *, file_id: Optional[str] = None):
        details = {"price": str(price)}
        if file_id is not None:
            details["file_id"] = file_id
        super().__init__(
            code=BusinessCode.PAYMENT_REQUIRED,
            message="Payment required to download this file",
            error_type="PaymentRequired",
            details=details,
        )
