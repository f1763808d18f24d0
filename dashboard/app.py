"""LuckyPay Dashboard - FastAPI Application"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from luckypay import __version__
from luckypay.errors import AuthenticationError, DataAccessError, IntegrityError, StorageError
from luckypay.logging_config import log_action
from luckypay.system import LuckyPaySystem

from .pages import render_dashboard, render_landing


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


# Request models

class SignUpRequest(BaseModel):
    phone: str = Field(..., min_length=1, description="Phone number used to sign in")
    password: str
    full_name: Optional[str] = None


class LoginRequest(BaseModel):
    phone: str
    password: str


class BankAccountRequest(BaseModel):
    account_number: str = Field(..., min_length=1)
    account_name: str = Field(..., min_length=1)
    bank_name: str = Field(..., min_length=1)
    bank_code: Optional[str] = None
    is_primary: bool = False


# Dependencies

def get_system(request: Request) -> LuckyPaySystem:
    return request.app.state.system


def get_current_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: LuckyPaySystem = Depends(get_system)
) -> Optional[str]:
    """Identity id from a bearer token or the session cookie, None when signed out"""
    token = credentials.credentials if credentials else request.cookies.get(
        system.config.session_cookie_name
    )
    if not token:
        return None
    try:
        return system.identity.verify_token(token)
    except AuthenticationError:
        return None


def require_identity(identity_id: Optional[str] = Depends(get_current_identity)) -> str:
    if identity_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return identity_id


def _redirect_to_dashboard(**params: str) -> RedirectResponse:
    query = f"?{urlencode(params)}" if params else ""
    return RedirectResponse(url=f"/dashboard{query}", status_code=303)


def create_app(system: Optional[LuckyPaySystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    
    system = system or LuckyPaySystem()
    
    app = FastAPI(
        title="LuckyPay Dashboard",
        description="Digital banking dashboard for LuckyPay customers",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.system = system
    
    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in system.config.cors_origins.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    
    @app.exception_handler(DataAccessError)
    async def data_access_error_handler(request: Request, exc: DataAccessError):
        return JSONResponse(status_code=400, content={"detail": exc.message})
    
    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(request: Request, exc: AuthenticationError):
        return JSONResponse(status_code=401, content={"detail": str(exc)})
    
    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(f"Storage unavailable: {exc.message}")
        return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})
    
    # Pages
    
    @app.get("/", response_class=HTMLResponse)
    def landing(identity_id: Optional[str] = Depends(get_current_identity)):
        if identity_id is not None:
            return RedirectResponse(url="/dashboard", status_code=303)
        return HTMLResponse(render_landing())
    
    @app.get("/dashboard", response_class=HTMLResponse)
    def dashboard(
        hide_balance: bool = Query(False),
        notice: Optional[str] = Query(None),
        error: Optional[str] = Query(None),
        identity_id: Optional[str] = Depends(get_current_identity)
    ):
        if identity_id is None:
            return RedirectResponse(url="/", status_code=303)
        
        client = system.client()
        try:
            client.get_profile(identity_id)
        except DataAccessError as e:
            error = error or e.message
        
        try:
            transactions = client.list_recent_transactions(identity_id)
        except DataAccessError:
            # Already logged by the client; the page shows an empty history
            transactions = []
        
        return HTMLResponse(render_dashboard(
            client.profile, transactions,
            hide_balance=hide_balance, notice=notice, error=error
        ))
    
    @app.post("/dashboard/verification-payment")
    def dashboard_verification_payment(identity_id: Optional[str] = Depends(get_current_identity)):
        if identity_id is None:
            return RedirectResponse(url="/", status_code=303)
        try:
            system.client().create_verification_payment(identity_id)
        except DataAccessError as e:
            return _redirect_to_dashboard(error=e.message)
        return _redirect_to_dashboard(notice="verification_payment")
    
    # Authentication
    
    @app.post("/auth/signup", status_code=201)
    def sign_up(request: SignUpRequest) -> Dict[str, Any]:
        try:
            identity = system.identity.sign_up(request.phone, request.password, request.full_name)
        except IntegrityError:
            raise HTTPException(status_code=409, detail="Phone number already registered")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"id": identity.id, "phone": identity.phone}
    
    @app.post("/auth/login")
    def login(request: LoginRequest) -> JSONResponse:
        session = system.identity.sign_in(request.phone, request.password)
        response = JSONResponse(content=session.to_dict())
        response.set_cookie(
            system.config.session_cookie_name,
            session.access_token,
            max_age=system.config.jwt_expiry_hours * 3600,
            httponly=True,
            samesite="lax"
        )
        return response
    
    @app.post("/auth/logout")
    def logout(identity_id: Optional[str] = Depends(get_current_identity)):
        if identity_id:
            log_action(logger, "info", "Signed out", user_id=identity_id,
                       action="sign_out", resource="auth")
        response = RedirectResponse(url="/", status_code=303)
        response.delete_cookie(system.config.session_cookie_name)
        return response
    
    # JSON API
    
    @app.get("/api/profile")
    def get_profile(identity_id: str = Depends(require_identity)):
        profile = system.client().get_profile(identity_id)
        if profile is None:
            raise HTTPException(status_code=404, detail="Profile not found")
        return profile.to_dict()
    
    @app.get("/api/transactions")
    def list_transactions(identity_id: str = Depends(require_identity)):
        transactions = system.client().list_recent_transactions(identity_id)
        return {
            "transactions": [t.to_dict() for t in transactions],
            "total": len(transactions)
        }
    
    @app.post("/api/transactions/verification-payment", status_code=201)
    def create_verification_payment(identity_id: str = Depends(require_identity)):
        transaction_id = system.client().create_verification_payment(identity_id)
        return {"id": transaction_id}
    
    @app.delete("/api/transactions/{transaction_id}")
    def delete_transaction(transaction_id: str, identity_id: str = Depends(require_identity)):
        if not system.client().delete_transaction(identity_id, transaction_id):
            raise HTTPException(status_code=404, detail="Transaction not found")
        return {"deleted": True}
    
    @app.get("/api/bank-accounts")
    def list_bank_accounts(identity_id: str = Depends(require_identity)):
        accounts = system.client().list_bank_accounts(identity_id)
        return {"bank_accounts": [a.to_dict() for a in accounts]}
    
    @app.post("/api/bank-accounts", status_code=201)
    def add_bank_account(request: BankAccountRequest, identity_id: str = Depends(require_identity)):
        account = system.client().add_bank_account(
            identity_id,
            request.account_number,
            request.account_name,
            request.bank_name,
            bank_code=request.bank_code,
            is_primary=request.is_primary
        )
        return account.to_dict()
    
    @app.get("/api/audit-logs")
    def list_audit_logs(
        limit: int = Query(50, ge=1, le=500),
        identity_id: str = Depends(require_identity)
    ):
        entries = system.client().list_audit_logs(identity_id, limit=limit)
        return {"audit_logs": [e.to_dict() for e in entries]}
    
    @app.get("/health")
    def health():
        return {
            "status": "healthy",
            "version": __version__,
            "schema_version": system.migrations.get_current_version()
        }
    
    return app
