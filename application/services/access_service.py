"""
Download gating (application/services).

Access is re-evaluated from the ledger on every call; nothing is cached, so a
refund revokes access on the next request.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.payments import AccessDecisionDTO, DownloadGrantDTO
from application.ports.storage import StoragePort
from core.logging_config import get_logger
from domain.access.policy import AccessDecision, AccessVerdict, decide_access
from domain.common.exceptions import (
    AccessForbiddenException,
    FileAssetNotFoundException,
    PaymentRequiredException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.file_asset import FileAsset


logger = get_logger(__name__)


class AccessService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        storage: Optional[StoragePort] = None,
        *,
        url_ttl: int = 600,
    ) -> None:
        self._uow_factory = uow_factory
        self._storage = storage
        self._url_ttl = url_ttl

    async def _evaluate(self, file_id: int, requester_id: Optional[int]) -> tuple[FileAsset, AccessDecision]:
        async with self._uow_factory(readonly=True) as uow:
            asset = await uow.file_asset_repository.get_by_id(file_id)
            if asset is None or asset.status == "deleted":
                raise FileAssetNotFoundException(str(file_id))
            purchase = None
            if requester_id is not None and asset.is_paid() and not asset.belongs_to(requester_id):
                purchase = await uow.payment_repository.get_completed_for(file_id, requester_id)
        return asset, decide_access(asset, requester_id, purchase)

    async def can_download(self, file_id: int, requester_id: Optional[int]) -> AccessDecisionDTO:
        _, decision = await self._evaluate(file_id, requester_id)
        return AccessDecisionDTO(file_id=file_id, verdict=decision.verdict.value, price=decision.price)

    async def issue_download(self, file_id: int, requester_id: Optional[int]) -> DownloadGrantDTO:
        """Return a short-lived signed URL, or raise 402/403."""
        asset, decision = await self._evaluate(file_id, requester_id)
        if decision.verdict == AccessVerdict.PAYMENT_REQUIRED:
            logger.info("download_payment_required", file_id=file_id, requester_id=requester_id)
            raise PaymentRequiredException(decision.price, file_id=str(file_id))
        if decision.verdict == AccessVerdict.FORBIDDEN:
            logger.info("download_forbidden", file_id=file_id, requester_id=requester_id)
            raise AccessForbiddenException(details={"file_id": file_id})

        if self._storage is None:
            raise RuntimeError("storage client is not initialized")
        disposition = None
        if asset.original_filename:
            disposition = f'attachment; filename="{asset.original_filename}"'
        presigned = await self._storage.generate_presigned_url(
            asset.storage_key,
            expires_in=self._url_ttl,
            response_content_disposition=disposition,
            response_content_type=asset.content_type,
        )
        logger.info("download_granted", file_id=file_id, requester_id=requester_id, reason=decision.reason)
        return DownloadGrantDTO(
            file_id=file_id,
            url=presigned.url,
            expires_in=presigned.expires_in,
            filename=asset.original_filename,
        )
