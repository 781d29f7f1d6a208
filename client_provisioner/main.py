from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

from client_provisioner.models.provisioning import ProvisionFailureResponse, ValidationErrorResponse
from client_provisioner.routes.health import router as health_router
from client_provisioner.routes.provision import router as provision_router
from client_provisioner.services.errors import ProvisioningFailedError, ProvisioningValidationError


def _ensure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    formatter = logging.Formatter("%(levelname)s: %(message)s")
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    else:
        root.setLevel(level)
        for handler in root.handlers:
            handler.setFormatter(formatter)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _ensure_logging()
    yield


app = FastAPI(lifespan=lifespan)

app.include_router(health_router)
app.include_router(provision_router)


@app.exception_handler(ProvisioningValidationError)
async def validation_error_handler(request: Request, exc: ProvisioningValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ValidationErrorResponse(error_code=exc.code, detail=str(exc)).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ValidationErrorResponse(
            error_code=ProvisioningValidationError.code,
            detail="; ".join(problems) or "Invalid request body",
        ).model_dump(),
    )


@app.exception_handler(ProvisioningFailedError)
async def provisioning_failed_handler(request: Request, exc: ProvisioningFailedError) -> JSONResponse:
    """Map a failed (and rolled back) provisioning attempt to a consistent HTTP response.

    The body names the failed step, the error classification and whether cleanup
    of the earlier steps fully succeeded.

    Returns:
        502 Bad Gateway with a ProvisionFailureResponse JSON body.
    """
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=ProvisionFailureResponse.from_error(exc).model_dump(),
    )


@app.get("/")
async def root():
    return {"message": "Client resource provisioner is running."}
