from certimos.services.certificates import (
    CertificateService,
    MintRequest,
    MintResult,
    TransferRequest,
    TransferResult,
    VerificationResult,
)

__all__ = [
    "CertificateService",
    "MintRequest",
    "MintResult",
    "TransferRequest",
    "TransferResult",
    "VerificationResult",
]
