"""
预售系统 — 购买路由

会话创建、票据切换、手动检查和证明下载。
"""

from fastapi import APIRouter, Response

from presale.api.dependencies import OrchestratorDep
from presale.api.schemas import (
    ApiResponse,
    ReferenceListResponse,
    SessionResponse,
    StartSessionRequest,
    TicketResponse,
)
from presale.common.models import LaunchAvailability

router = APIRouter(prefix="/purchase", tags=["购买"])


@router.get("/availability", response_model=ApiResponse[LaunchAvailability])
async def get_availability(
    orchestrator: OrchestratorDep,
) -> ApiResponse[LaunchAvailability]:
    """查询发售剩余额度"""
    availability = await orchestrator.check_availability()
    return ApiResponse(data=availability)


@router.post("/sessions", response_model=ApiResponse[SessionResponse])
async def start_session(
    request: StartSessionRequest,
    orchestrator: OrchestratorDep,
) -> ApiResponse[SessionResponse]:
    """
    开始购买会话
    
    关闭当前会话，检查剩余供应后批量创建充值通道。
    """
    session = await orchestrator.start_session(
        qty=request.quantity,
        payment=request.payment.to_asset(),
        refund_to=request.refund_to,
        user_pubkey=request.user_pubkey,
        unit_price_usd=request.unit_price_usd,
    )
    return ApiResponse(data=SessionResponse.from_session(session))


@router.get("/sessions/current", response_model=ApiResponse[SessionResponse])
async def get_current_session(
    orchestrator: OrchestratorDep,
) -> ApiResponse[SessionResponse]:
    """获取当前会话进度"""
    session = orchestrator.require_session()
    return ApiResponse(data=SessionResponse.from_session(session))


@router.post("/sessions/current/select/{index}", response_model=ApiResponse[SessionResponse])
async def select_ticket(
    index: int,
    orchestrator: OrchestratorDep,
) -> ApiResponse[SessionResponse]:
    """切换当前展示的票据（已完成的票据不可选中）"""
    orchestrator.select_ticket(index)
    return ApiResponse(data=SessionResponse.from_session(orchestrator.require_session()))


@router.delete("/sessions/current", response_model=ApiResponse[dict])
async def reset_session(
    orchestrator: OrchestratorDep,
) -> ApiResponse[dict]:
    """关闭当前会话"""
    await orchestrator.reset()
    return ApiResponse(data={"reset": True})


@router.post("/tickets/{index}/check", response_model=ApiResponse[TicketResponse])
async def check_ticket(
    index: int,
    orchestrator: OrchestratorDep,
) -> ApiResponse[TicketResponse]:
    """立即查询一次兑换状态"""
    ticket = await orchestrator.check_now(index)
    return ApiResponse(data=TicketResponse.from_ticket(ticket))


@router.post("/tickets/{index}/retry", response_model=ApiResponse[TicketResponse])
async def retry_ticket(
    index: int,
    orchestrator: OrchestratorDep,
) -> ApiResponse[TicketResponse]:
    """重新监控已失效的票据"""
    ticket = await orchestrator.retry(index)
    return ApiResponse(data=TicketResponse.from_ticket(ticket))


@router.get("/tickets/{index}/proof")
async def download_proof(
    index: int,
    orchestrator: OrchestratorDep,
) -> Response:
    """下载证明压缩包"""
    session = orchestrator.require_session()
    content = session.download_proof(index)
    filename = session.proof_filename(index)
    return Response(
        content=content,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/references", response_model=ApiResponse[ReferenceListResponse])
async def list_references(
    orchestrator: OrchestratorDep,
    all_launches: bool = False,
) -> ApiResponse[ReferenceListResponse]:
    """本地保存的证明凭证"""
    items = orchestrator.stored_references(all_launches=all_launches)
    return ApiResponse(data=ReferenceListResponse(items=items, total=len(items)))
