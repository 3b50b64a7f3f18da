"""
用户领域实体 - 创作者/买家账户及打款目标
"""
from datetime import datetime
from typing import Optional
from dataclasses import dataclass
import re

from domain.common.exceptions import DomainValidationException

_UPI_ID_PATTERN = re.compile(r"^[A-Za-z0-9.\-_]{2,256}@[A-Za-z]{2,64}$")
_PHONE_PATTERN = re.compile(r"^\+?\d{10,13}$")


@dataclass
class User:
    """用户实体 - 同一账户既可作为创作者也可作为买家"""

    id: Optional[int]
    name: str
    email: str
    phone: Optional[str] = None
    upi_id: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.upi_id and not _UPI_ID_PATTERN.match(self.upi_id):
            raise DomainValidationException(f"无效的UPI ID: {self.upi_id}", field="upi_id")
        if self.phone and not _PHONE_PATTERN.match(self.phone):
            raise DomainValidationException(f"无效的手机号格式: {self.phone}", field="phone")

    def payout_destination(self) -> Optional[str]:
        """业务规则：优先使用 UPI ID，其次使用绑定 UPI 的手机号"""
        if self.upi_id:
            return self.upi_id
        if self.phone:
            return self.phone
        return None

