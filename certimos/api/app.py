"""
Certimos — HTTP API

FastAPI application exposing certificate discovery, minting, transfer,
verification and the deployment registry. Responses use camelCase keys and a
`success` flag; errors are mapped from the Certimos error taxonomy:

    InputValidationError / TransactionError  -> 400
    UnauthorizedTransferError                -> 403
    TokenNotFoundError                       -> 404
    DuplicateCertificateError                -> 409
    ConfigurationError                       -> 500
    UpstreamUnavailableError                 -> 502
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from certimos.chain.contract import web3_reader_factory, web3_writer_factory
from certimos.config import settings
from certimos.discovery.aggregator import MultiContractAggregator
from certimos.discovery.metadata import MetadataResolver
from certimos.discovery.scanner import OwnershipScanner
from certimos.errors import (
    CertimosError,
    ConfigurationError,
    DuplicateCertificateError,
    InputValidationError,
    TokenNotFoundError,
    TransactionError,
    UnauthorizedTransferError,
    UpstreamUnavailableError,
)
from certimos.registry.deployments import DeploymentRecord, DeploymentRegistry
from certimos.services.certificates import CertificateService, MintRequest, TransferRequest
from certimos.utils.validation import parse_contract_list, validate_address

logger = structlog.get_logger(__name__)

VERSION = "1.0.0"

# Most specific first.
_STATUS_BY_ERROR: tuple[tuple[type[CertimosError], int], ...] = (
    (InputValidationError, 400),
    (TransactionError, 400),
    (UnauthorizedTransferError, 403),
    (TokenNotFoundError, 404),
    (DuplicateCertificateError, 409),
    (ConfigurationError, 500),
    (UpstreamUnavailableError, 502),
)


def status_for_error(exc: CertimosError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_service(request: Request) -> CertificateService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise ConfigurationError("Certificate service is not initialized")
    return service


def get_registry(request: Request) -> DeploymentRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise ConfigurationError("Deployment registry is not initialized")
    return registry


# ---------------------------------------------------------------------------
# Application Factory
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _default_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the registry, resolver and service from settings; tear them down on exit."""
    # certimos.main imports this module.
    from certimos.main import create_db_engine

    engine, session_factory = await create_db_engine()
    registry = DeploymentRegistry(session_factory)

    async with MetadataResolver() as resolver:
        scanner = OwnershipScanner(resolver)
        aggregator = MultiContractAggregator(scanner, web3_reader_factory, registry)
        app.state.registry = registry
        app.state.service = CertificateService(
            resolver=resolver,
            scanner=scanner,
            aggregator=aggregator,
            reader_factory=web3_reader_factory,
            writer_factory=web3_writer_factory,
        )
        logger.info("api_startup_complete", network=settings.NETWORK_NAME)
        try:
            yield
        finally:
            await engine.dispose()
            logger.info("api_shutdown_complete")


def create_app(
    service: CertificateService | None = None,
    registry: DeploymentRegistry | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    When both collaborators are injected (tests, embedding) no lifespan
    wiring runs; otherwise they are built from settings at startup.
    """
    injected = service is not None and registry is not None
    app = FastAPI(
        title="Certimos API",
        description="Certificate discovery, valuation and issuance",
        version=VERSION,
        lifespan=None if injected else _default_lifespan,
    )
    app.state.service = service
    app.state.registry = registry

    @app.exception_handler(CertimosError)
    async def _certimos_error_handler(request: Request, exc: CertimosError) -> JSONResponse:
        status_code = status_for_error(exc)
        body: dict[str, Any] = {"success": False, "error": str(exc)}
        if isinstance(exc, DuplicateCertificateError):
            body["existingTokenId"] = exc.existing_token_id
            body["issuedAt"] = exc.issued_at
        if isinstance(exc, InputValidationError):
            body["field"] = exc.field

        log = logger.error if status_code >= 500 else logger.warning
        log(
            "api_request_failed",
            path=request.url.path,
            status_code=status_code,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(status_code=status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        messages = [str(error.get("msg", "")) for error in exc.errors()]
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "; ".join(messages) or "Invalid request"},
        )

    _register_routes(app)
    return app


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "network": settings.NETWORK_NAME, "version": VERSION}

    # -- Certificates -------------------------------------------------------

    @app.get("/api/certificates/{wallet_address}")
    async def list_certificates(
        wallet_address: str,
        contract_address: str | None = Query(default=None, alias="contractAddress"),
        service: CertificateService = Depends(get_service),
    ) -> dict[str, Any]:
        result = await service.list_certificates(wallet_address, contract_address)
        return {"success": True, **_dump(result)}

    @app.get("/api/certificates/{wallet_address}/multi")
    async def list_certificates_multi(
        wallet_address: str,
        contracts: str | None = Query(default=None),
        service: CertificateService = Depends(get_service),
    ) -> dict[str, Any]:
        validate_address(wallet_address)
        result = await service.list_certificates_multi(
            wallet_address, parse_contract_list(contracts)
        )
        return {"success": True, **_dump(result)}

    @app.get("/api/certificates/{wallet_address}/count")
    async def count_certificates(
        wallet_address: str,
        contract_address: str | None = Query(default=None, alias="contractAddress"),
        service: CertificateService = Depends(get_service),
    ) -> dict[str, Any]:
        result = await service.count_certificates(wallet_address, contract_address)
        return {"success": True, **_dump(result)}

    @app.post("/api/certificates/mint")
    async def mint_certificate(
        body: MintRequest,
        service: CertificateService = Depends(get_service),
    ) -> dict[str, Any]:
        result = await service.mint(body)
        return {"success": True, "message": "Certificate minted successfully", **_dump(result)}

    @app.post("/api/certificates/transfer")
    async def transfer_certificate(
        body: TransferRequest,
        service: CertificateService = Depends(get_service),
    ) -> dict[str, Any]:
        result = await service.transfer(body)
        return {
            "success": True,
            "message": "Certificate transferred successfully",
            **_dump(result),
        }

    @app.get("/api/verify/{token_id}")
    async def verify_certificate(
        token_id: str,
        contract_address: str | None = Query(default=None, alias="contractAddress"),
        service: CertificateService = Depends(get_service),
    ) -> dict[str, Any]:
        result = await service.verify(token_id, contract_address)
        return {"success": True, **_dump(result)}

    @app.get("/api/wallet/{address}/balance")
    async def wallet_balance(
        address: str,
        service: CertificateService = Depends(get_service),
    ) -> dict[str, Any]:
        balance = await service.wallet_balance(address)
        return {
            "success": True,
            "address": address,
            "balance": balance.formatted,
            "balanceWei": balance.wei,
            "network": settings.NETWORK_NAME,
        }

    # -- Deployment registry ------------------------------------------------

    @app.get("/api/deployments")
    async def list_deployments(
        registry: DeploymentRegistry = Depends(get_registry),
    ) -> dict[str, Any]:
        records = await registry.list_all()
        return {
            "success": True,
            "count": len(records),
            "deployments": [_dump(record) for record in records],
        }

    @app.post("/api/deployments")
    async def save_deployment(
        body: DeploymentRecord,
        registry: DeploymentRegistry = Depends(get_registry),
    ) -> dict[str, Any]:
        record = await registry.save(body)
        return {"success": True, "deployment": _dump(record)}

    @app.get("/api/deployments/{contract_name}")
    async def get_deployment(
        contract_name: str,
        registry: DeploymentRegistry = Depends(get_registry),
    ) -> JSONResponse:
        record = await registry.get(contract_name)
        if record is None:
            return JSONResponse(
                status_code=404,
                content={"success": False, "error": f"Deployment {contract_name!r} not found"},
            )
        return JSONResponse(content={"success": True, "deployment": _dump(record)})
