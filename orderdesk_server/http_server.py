"""HTTP server for OrderDesk."""

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Cookie, Depends, FastAPI, Header, HTTPException, Response
from pydantic import BaseModel

from .app import OrderDesk
from .config import Settings
from .models import AuthCredentials, OrderStatus, PaymentStatus, SessionState
from .order_service import (
    bundle_items_with_sizes,
    filter_orders,
    has_more_pages,
    order_bundle_products_summary,
    order_sizes_info,
    order_stats,
    paginate,
    total_revenue,
)
from .session import AuthSession

logger = logging.getLogger("orderdesk-http-server")

SESSION_COOKIE = "orderdesk_session"

# Global state
desk: Optional[OrderDesk] = None
# One AuthSession per signed in client, keyed by its session token
sessions: dict[str, AuthSession] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    global desk

    # Startup
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    logger.info("Starting OrderDesk HTTP Server...")
    desk = OrderDesk(settings)
    await desk.start()

    yield

    # Shutdown
    logger.info("Shutting down OrderDesk HTTP Server...")
    while sessions:
        _, session = sessions.popitem()
        await session.close()
    await desk.close()
    desk = None


app = FastAPI(
    title="OrderDesk",
    description="HTTP API for COGA store orders",
    version="0.1.0",
    lifespan=lifespan,
)


# Request/Response Models
class SignupRequest(BaseModel):
    email: str
    password: str
    display_name: Optional[str] = None
    admin_code: Optional[str] = None


class AuthResponse(BaseModel):
    success: bool
    message: str
    token: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str


class PaymentStatusUpdateRequest(BaseModel):
    payment_status: str


# Client sessions
def client_token(
    authorization: Optional[str] = Header(default=None),
    orderdesk_session: Optional[str] = Cookie(default=None),
) -> Optional[str]:
    """Session token from an ``Authorization: Bearer`` header or the session cookie."""
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token:
            return token
    return orderdesk_session


def client_session(token: Optional[str] = Depends(client_token)) -> Optional[AuthSession]:
    if token is None:
        return None
    return sessions.get(token)


def require_user(session: Optional[AuthSession] = Depends(client_session)) -> AuthSession:
    if session is None or not session.is_authenticated:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session


def require_admin(session: AuthSession = Depends(require_user)) -> AuthSession:
    if not session.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return session


async def _end_session(token: Optional[str]) -> None:
    session = sessions.pop(token, None) if token else None
    if session is not None:
        await session.sign_out()
        await session.close()


async def _issue_session(
    response: Response, session: AuthSession, previous_token: Optional[str], message: str
) -> AuthResponse:
    """Register a signed in session and hand its token to the client."""
    await _end_session(previous_token)
    token = secrets.token_urlsafe(32)
    sessions[token] = session
    response.set_cookie(SESSION_COOKIE, token, httponly=True, samesite="lax")
    logger.info(f"Opened session for {session.user_email}")
    return AuthResponse(success=True, message=message, token=token)


@app.get("/")
async def root(session: Optional[AuthSession] = Depends(client_session)):
    """Root endpoint with API information."""
    return {
        "name": "OrderDesk",
        "version": "0.1.0",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "auth": {
                "login": "POST /auth/login",
                "signup": "POST /auth/signup",
                "logout": "POST /auth/logout",
                "status": "GET /auth/status",
            },
            "orders": {"list": "GET /orders", "get": "GET /orders/{order_id}"},
            "admin": {
                "orders": "GET /admin/orders",
                "stats": "GET /admin/stats",
                "status": "POST /admin/orders/{order_id}/status",
                "payment_status": "POST /admin/orders/{order_id}/payment-status",
            },
        },
        "authenticated": session is not None and session.is_authenticated,
    }


@app.get("/health")
async def health_check(session: Optional[AuthSession] = Depends(client_session)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "authenticated": session is not None and session.is_authenticated,
    }


# Authentication endpoints
@app.post("/auth/login", response_model=AuthResponse)
async def login(request: AuthCredentials, response: Response, token: Optional[str] = Depends(client_token)):
    """Sign in with email and password. The session token is returned and set as a cookie."""
    session = await desk.open_session()
    if await session.sign_in(request.email, request.password):
        return await _issue_session(response, session, token, f"Successfully logged in as {request.email}")

    message = session.last_error or "Login failed"
    await session.close()
    return AuthResponse(success=False, message=message)


@app.post("/auth/signup", response_model=AuthResponse)
async def signup(request: SignupRequest, response: Response, token: Optional[str] = Depends(client_token)):
    """Create an account and sign in. An admin code registers an admin."""
    session = await desk.open_session()
    if request.admin_code is not None:
        success = await session.sign_up_as_admin(
            request.email, request.password, request.display_name or "", request.admin_code
        )
    else:
        success = await session.sign_up(request.email, request.password)

    if success:
        return await _issue_session(response, session, token, f"Account created for {session.user_email}")

    message = session.last_error or "Sign up failed"
    await session.close()
    return AuthResponse(success=False, message=message)


@app.post("/auth/logout", response_model=AuthResponse)
async def logout(response: Response, token: Optional[str] = Depends(client_token)):
    """Sign out and forget the session token."""
    await _end_session(token)
    response.delete_cookie(SESSION_COOKIE)
    return AuthResponse(success=True, message="Successfully logged out")


@app.get("/auth/status")
async def auth_status(session: Optional[AuthSession] = Depends(client_session)):
    """Get authentication status of the calling client."""
    if session is None:
        return SessionState().model_dump()
    return session.snapshot().model_dump()


# Customer endpoints
@app.get("/orders")
async def get_orders(current_only: bool = False, session: AuthSession = Depends(require_user)):
    """Orders of the signed in user."""
    try:
        orders = await desk.orders.get_user_orders(session.user_id)
    except Exception as e:
        logger.error(f"Get orders error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    if current_only:
        orders = [order for order in orders if order.is_active]
    return {
        "count": len(orders),
        "orders": [order.model_dump(mode="json") for order in orders],
    }


@app.get("/orders/{order_id}")
async def get_order(order_id: str, session: AuthSession = Depends(require_user)):
    """One order with its size and bundle breakdown."""
    order = await desk.orders.get_order(order_id)
    if order is None or (not session.is_admin and order.user_id != session.user_id):
        raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")
    return {
        "order": order.model_dump(mode="json"),
        "sizes": order_sizes_info(order),
        "bundleItems": bundle_items_with_sizes(order),
        "bundleProducts": order_bundle_products_summary(order),
    }


# Admin endpoints
@app.get("/admin/orders")
async def list_orders(
    query: str = "",
    status: str = "all",
    page: int = 1,
    page_size: int = 20,
    session: AuthSession = Depends(require_admin),
):
    """Filter and page through every order."""
    try:
        orders = filter_orders(await desk.orders.get_all_orders(), query, status)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {
        "count": len(orders),
        "page": page,
        "hasMore": has_more_pages(orders, page, page_size),
        "orders": [order.model_dump(mode="json") for order in paginate(orders, page, page_size)],
    }


@app.get("/admin/stats")
async def stats(session: AuthSession = Depends(require_admin)):
    """Order counts per status and delivered revenue."""
    orders = await desk.orders.get_all_orders()
    return {"counts": order_stats(orders), "revenue": total_revenue(orders)}


@app.post("/admin/orders/{order_id}/status")
async def update_status(order_id: str, request: StatusUpdateRequest, session: AuthSession = Depends(require_admin)):
    """Change the status of an order and record it in the status history."""
    try:
        status = OrderStatus.parse(request.status)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if await desk.orders.get_order(order_id) is None:
        raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")
    await desk.orders.update_order_status(order_id, status)
    logger.info(f"{session.user_email} set order {order_id} to {status.value}")
    return {"success": True, "status": status.value}


@app.post("/admin/orders/{order_id}/payment-status")
async def update_payment_status(
    order_id: str, request: PaymentStatusUpdateRequest, session: AuthSession = Depends(require_admin)
):
    """Mark an order as paid or pending."""
    try:
        payment_status = PaymentStatus.parse(request.payment_status)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if await desk.orders.get_order(order_id) is None:
        raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")
    await desk.orders.update_payment_status(order_id, payment_status)
    logger.info(f"{session.user_email} set payment of order {order_id} to {payment_status.value}")
    return {"success": True, "paymentStatus": payment_status.value}


def run_http_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Run the HTTP server."""
    import uvicorn

    if reload:
        uvicorn.run("orderdesk_server.http_server:app", host=host, port=port, reload=True, log_level="info")
    else:
        uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server()
