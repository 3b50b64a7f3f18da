"""文件访问相关路由：访问判定与签名下载链接。"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from api.dependencies import get_access_service, get_optional_user_id
from application.dtos.payments import AccessDecisionDTO, DownloadGrantDTO
from application.services.access_service import AccessService
from core.response import Response as ApiResponse, success_response

router = APIRouter(
    prefix="/files",
    tags=["文件访问"],
)


@router.get(
    "/{file_id}/access",
    summary="访问判定",
    response_model=ApiResponse[AccessDecisionDTO],
)
async def check_access(
    file_id: int,
    requester_id: Optional[int] = Depends(get_optional_user_id),
    service: AccessService = Depends(get_access_service),
):
    """只返回判定结果（authorized / payment_required / forbidden），不签发链接"""
    decision = await service.can_download(file_id, requester_id)
    return success_response(data=decision)


@router.get(
    "/{file_id}/download",
    summary="获取下载链接",
    response_model=ApiResponse[DownloadGrantDTO],
)
async def download_file(
    file_id: int,
    requester_id: Optional[int] = Depends(get_optional_user_id),
    service: AccessService = Depends(get_access_service),
):
    """授权时返回短时效签名URL；未付款 402，无权限 403"""
    grant = await service.issue_download(file_id, requester_id)
    return success_response(data=grant)
