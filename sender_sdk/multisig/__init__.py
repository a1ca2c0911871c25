from .service import (
    HttpProposalService,
    InMemoryProposalService,
    ProposalRequest,
    ProposalService,
    batch_digest,
    encode_batch,
)

__all__ = [
    "encode_batch",
    "batch_digest",
    "ProposalRequest",
    "ProposalService",
    "HttpProposalService",
    "InMemoryProposalService",
]
