# referral_hub/routes/customer.py
from typing import Optional

from fastapi import APIRouter, Depends

from ..controllers.customer_controller import (
    create_customer,
    delete_customer,
    get_customer,
    get_my_customer,
    list_customers,
    update_customer,
)
from ..schemas.common import DataResponse, ListResponse, MessageResponse
from ..schemas.customer_schema import CustomerCreate, CustomerOut, CustomerUpdate
from ..utils.auth_utils import get_current_business, get_current_customer

router = APIRouter(prefix="/customers", tags=["Customers"])


@router.post("", response_model=DataResponse[CustomerOut], status_code=201, summary="Add a customer")
async def create(data: CustomerCreate, business: dict = Depends(get_current_business)):
    return await create_customer(business, data)


@router.get("", response_model=ListResponse[CustomerOut], summary="List customers")
async def list_all(
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    source: Optional[str] = None,
    business: dict = Depends(get_current_business),
):
    return await list_customers(business, page, limit, search, source)


@router.get("/me", response_model=DataResponse[CustomerOut], summary="My customer profile")
async def me(customer: dict = Depends(get_current_customer)):
    return await get_my_customer(customer)


@router.get("/{customer_id}", response_model=DataResponse[CustomerOut], summary="Get a customer")
async def read(customer_id: str, business: dict = Depends(get_current_business)):
    return await get_customer(business, customer_id)


@router.put("/{customer_id}", response_model=DataResponse[CustomerOut], summary="Edit a customer")
async def update(customer_id: str, data: CustomerUpdate, business: dict = Depends(get_current_business)):
    return await update_customer(business, customer_id, data)


@router.delete("/{customer_id}", response_model=MessageResponse, summary="Deactivate a customer")
async def delete(customer_id: str, business: dict = Depends(get_current_business)):
    return await delete_customer(business, customer_id)
