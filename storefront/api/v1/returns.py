"""
Customer return endpoints.

Listing and submitting return requests for delivered orders. Service
exceptions are mapped by the application exception handlers.
"""

from fastapi import APIRouter, status

from storefront.api.deps import CurrentUser, ReturnServiceDep
from storefront.schemas.common import ApiResponse, ok
from storefront.schemas.returns import ReturnCreateRequest

router = APIRouter()


@router.get("", response_model=ApiResponse, summary="List my returns")
async def list_returns(
    current_user: CurrentUser,
    service: ReturnServiceDep,
) -> ApiResponse:
    returns = await service.list_user_returns(current_user.id)
    return ok([return_request.to_response() for return_request in returns])


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a return",
)
async def create_return(
    request: ReturnCreateRequest,
    current_user: CurrentUser,
    service: ReturnServiceDep,
) -> ApiResponse:
    """
    Submit a return request for a delivered order.

    Raises:
        OrderNotFoundError: mapped to 404
        ReturnNotAllowedError, ReturnValidationError: mapped to 400
    """
    return_request = await service.create_return(
        user=current_user,
        order_id=request.order_id,
        items=request.items_payload(),
        images=request.images,
        refund_method=request.refund_method,
    )
    return ok(
        {
            "return_number": return_request.return_number,
            "status": return_request.status.value,
        },
        message="Return request submitted successfully",
    )
