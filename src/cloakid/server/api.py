"""
FastAPI service for the KYC engine.

Endpoints:
- GET  /relayer/public-key - Network public key for client-side encryption
- POST /relayer/inputs - Register client ciphertexts, get handles + input proof
- POST /relayer/decrypt - Decrypt a handle the caller holds a grant for
- POST /kyc - Submit encrypted KYC attributes
- POST /kyc/{subject}/attest - Attest a record (verifiers only)
- PUT  /verifiers/{principal} - Enable/disable a verifier (administrator only)
- PUT  /projects/{project_id}/policy - Configure project requirements
- POST /projects/{project_id}/eligibility/{subject} - Encrypted eligibility check
- POST /projects/{project_id}/proof - Mint an encrypted proof token

The caller principal is taken from the X-Principal header.
"""
import logging
import pickle
from typing import List, Optional
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cloakid.config import EngineConfig
from cloakid.logging_config import audit_log, configure_logging
from cloakid.server.engine import KYCEngine
from cloakid.shared.errors import KYCError
from cloakid.shared.protocol import EncryptedInput, EncryptedType
from cloakid.substrate.paillier import PaillierCoprocessor, deserialize_encrypted

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "InvalidSubmission": 400,
    "InvalidPolicy": 400,
    "NoSuchRecord": 404,
    "UnknownHandle": 404,
    "UnauthorizedVerifier": 403,
    "OnlyAdmin": 403,
    "PermissionDenied": 403,
    "PolicyInactive": 409,
    "UserNotVerified": 409,
}


# Pydantic models for API
class EncryptedValue(BaseModel):
    """One client-encrypted value."""
    type: str = Field(..., description="Encrypted type name, e.g. EUINT32")
    ciphertext_b64: str = Field(..., description="Base64-encoded pickled LightPHE Ciphertext")


class InputRegistrationRequest(BaseModel):
    values: List[EncryptedValue]
    engine: Optional[str] = Field(None, description="Engine address the proof binds to")


class InputRegistrationResponse(BaseModel):
    handles: List[str]
    input_proof: str


class DecryptRequest(BaseModel):
    handle: str


class DecryptResponse(BaseModel):
    handle: str
    value: str = Field(..., description="Decimal plaintext (256-bit values exceed JSON integers)")


class SubmitKYCRequest(BaseModel):
    """Passport, birth year and country handles in that order."""
    handles: List[str] = Field(..., min_length=3, max_length=3)
    input_proof: str


class VerificationStatusResponse(BaseModel):
    subject: str
    attested: bool
    attested_at: int
    attested_by: Optional[str] = None


class KYCDataResponse(BaseModel):
    subject: str
    passport: str
    birth_year: str
    country: str


class VerifierRequest(BaseModel):
    enabled: bool


class VerifierResponse(BaseModel):
    principal: str
    authorized: bool


class PolicyRequest(BaseModel):
    min_age: int
    allowed_countries: List[int]
    requires_passport: bool
    single_use: bool = False


class PolicyResponse(BaseModel):
    project_id: str
    min_age: int
    allowed_countries: List[int]
    requires_passport: bool
    active: bool
    single_use: bool


class HandleResponse(BaseModel):
    project_id: str
    subject: str
    handle: str


class ProofStatusResponse(BaseModel):
    project_id: str
    subject: str
    has_proof: bool


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    engine_address: str
    administrator: str
    records: int
    ciphertexts: int


# Server state
class ServerState:
    """Server state container."""
    def __init__(self):
        self.config: Optional[EngineConfig] = None
        self.substrate: Optional[PaillierCoprocessor] = None
        self.engine: Optional[KYCEngine] = None


state = ServerState()


def _initialize(config: EngineConfig, substrate: Optional[PaillierCoprocessor] = None) -> None:
    state.config = config
    state.substrate = substrate or PaillierCoprocessor(key_size=config.key_size)
    state.engine = KYCEngine(state.substrate, config=config)
    state.engine.subscribe(audit_log)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the engine on startup unless create_app() already did."""
    if state.engine is None:
        logger.info("Generating network key pair...")
        _initialize(EngineConfig.from_env())
    logger.info("Engine ready at %s", state.engine.address)
    yield
    logger.info("Server shutting down...")


app = FastAPI(
    title="CloakID",
    description="Encrypted credential eligibility API",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(KYCError)
async def kyc_error_handler(request: Request, exc: KYCError):
    status = ERROR_STATUS.get(exc.code, 400)
    if status == 403:
        audit_log.security_event(exc.code, path=request.url.path,
                                 principal=request.headers.get("x-principal"))
    return JSONResponse(
        status_code=status,
        content={"error": exc.code, "detail": str(exc), "hint": exc.hint},
    )


def get_engine() -> KYCEngine:
    if state.engine is None:
        raise HTTPException(status_code=500, detail="Server not initialized")
    return state.engine


def get_caller(x_principal: str = Header(..., description="Authenticated caller principal")) -> str:
    if not x_principal.strip():
        raise HTTPException(status_code=401, detail="Empty principal")
    return x_principal.strip()


@app.get("/health", response_model=HealthResponse)
async def health_check(engine: KYCEngine = Depends(get_engine)):
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        engine_address=engine.address,
        administrator=engine.administrator,
        records=len(engine.store),
        ciphertexts=len(state.substrate),
    )


# Relayer (substrate protocol)

@app.get("/relayer/public-key")
def public_key(engine: KYCEngine = Depends(get_engine)):
    """Network public key clients encrypt their attributes with."""
    return state.substrate.public_key


@app.post("/relayer/inputs", response_model=InputRegistrationResponse)
def register_inputs(
    request: InputRegistrationRequest,
    caller: str = Depends(get_caller),
    engine: KYCEngine = Depends(get_engine),
):
    """Register client ciphertexts and return handles bound to the caller."""
    try:
        ciphertexts = [
            (deserialize_encrypted(v.ciphertext_b64), EncryptedType[v.type.upper()])
            for v in request.values
        ]
    except (KeyError, ValueError, EOFError, pickle.UnpicklingError) as e:
        raise HTTPException(status_code=400, detail=f"Failed to deserialize ciphertext: {e}")

    try:
        encrypted_input = state.substrate.register_input(
            ciphertexts, request.engine or engine.address, caller
        )
    except TypeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return InputRegistrationResponse(
        handles=list(encrypted_input.handles),
        input_proof=encrypted_input.input_proof,
    )


@app.post("/relayer/decrypt", response_model=DecryptResponse)
def user_decrypt(
    request: DecryptRequest,
    caller: str = Depends(get_caller),
    engine: KYCEngine = Depends(get_engine),
):
    """Decrypt a handle for a caller holding a grant."""
    value = state.substrate.user_decrypt(request.handle, caller)
    return DecryptResponse(handle=request.handle, value=str(value))


# Identity records

@app.post("/kyc", response_model=VerificationStatusResponse)
def submit_kyc(
    request: SubmitKYCRequest,
    caller: str = Depends(get_caller),
    engine: KYCEngine = Depends(get_engine),
):
    """Submit (or resubmit) the caller's encrypted KYC attributes."""
    engine.submit(caller, EncryptedInput(handles=tuple(request.handles), input_proof=request.input_proof))
    return _status(engine, caller)


@app.post("/kyc/{subject}/attest", response_model=VerificationStatusResponse)
def attest_kyc(subject: str, caller: str = Depends(get_caller), engine: KYCEngine = Depends(get_engine)):
    """Attest a subject's record."""
    engine.attest(caller, subject)
    return _status(engine, subject)


@app.get("/kyc/{subject}/status", response_model=VerificationStatusResponse)
def verification_status(subject: str, engine: KYCEngine = Depends(get_engine)):
    return _status(engine, subject)


@app.get("/kyc/{subject}/data", response_model=KYCDataResponse)
def kyc_data(subject: str, engine: KYCEngine = Depends(get_engine)):
    """Ciphertext handles of a subject's attributes."""
    passport, birth_year, country = engine.encrypted_data_of(subject)
    return KYCDataResponse(subject=subject, passport=passport, birth_year=birth_year, country=country)


def _status(engine: KYCEngine, subject: str) -> VerificationStatusResponse:
    attested, attested_at, attested_by = engine.status_of(subject)
    return VerificationStatusResponse(
        subject=subject, attested=attested, attested_at=attested_at, attested_by=attested_by,
    )


# Verifier authority

@app.put("/verifiers/{principal}", response_model=VerifierResponse)
def set_verifier(
    principal: str,
    request: VerifierRequest,
    caller: str = Depends(get_caller),
    engine: KYCEngine = Depends(get_engine),
):
    engine.set_verifier(caller, principal, request.enabled)
    return VerifierResponse(principal=principal, authorized=engine.is_authorized(principal))


@app.get("/verifiers/{principal}", response_model=VerifierResponse)
def get_verifier(principal: str, engine: KYCEngine = Depends(get_engine)):
    return VerifierResponse(principal=principal, authorized=engine.is_authorized(principal))


# Policies

@app.put("/projects/{project_id}/policy", response_model=PolicyResponse)
def set_policy(
    project_id: str,
    request: PolicyRequest,
    caller: str = Depends(get_caller),
    engine: KYCEngine = Depends(get_engine),
):
    engine.set_policy(
        caller,
        project_id,
        request.min_age,
        request.allowed_countries,
        request.requires_passport,
        request.single_use,
    )
    return _policy(engine, project_id)


@app.get("/projects/{project_id}/policy", response_model=PolicyResponse)
def get_policy(project_id: str, engine: KYCEngine = Depends(get_engine)):
    return _policy(engine, project_id)


def _policy(engine: KYCEngine, project_id: str) -> PolicyResponse:
    policy = engine.policy_of(project_id)
    return PolicyResponse(
        project_id=project_id,
        min_age=policy.min_age,
        allowed_countries=list(policy.allowed_countries),
        requires_passport=policy.requires_passport,
        active=policy.active,
        single_use=policy.single_use,
    )


# Eligibility and proofs

@app.post("/projects/{project_id}/eligibility/{subject}", response_model=HandleResponse)
def check_eligibility(
    project_id: str,
    subject: str,
    caller: str = Depends(get_caller),
    engine: KYCEngine = Depends(get_engine),
):
    """Encrypted eligibility answer, decryptable by the caller and the subject."""
    handle = engine.evaluate(caller, subject, project_id)
    return HandleResponse(project_id=project_id, subject=subject, handle=handle)


@app.post("/projects/{project_id}/proof", response_model=HandleResponse)
def generate_proof(project_id: str, caller: str = Depends(get_caller), engine: KYCEngine = Depends(get_engine)):
    """Mint an encrypted proof token for the caller."""
    token = engine.issue_proof(caller, project_id)
    return HandleResponse(project_id=project_id, subject=caller, handle=token)


@app.get("/projects/{project_id}/proof/{subject}", response_model=ProofStatusResponse)
def proof_status(project_id: str, subject: str, engine: KYCEngine = Depends(get_engine)):
    return ProofStatusResponse(
        project_id=project_id, subject=subject, has_proof=engine.has_proof(subject, project_id),
    )


def create_app(
    config: Optional[EngineConfig] = None,
    substrate: Optional[PaillierCoprocessor] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI app.

    For programmatic use in tests and demos.
    """
    _initialize(config or EngineConfig(), substrate)
    return app


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the server directly."""
    import uvicorn
    config = EngineConfig.from_env()
    configure_logging(config.log_level, json_format=config.json_logs)
    _initialize(config)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
