"""Generation activities: everything that talks to a provider or a store."""

from .mode_resolver import (
    MediaShape,
    ResolveResult,
    resolve,
    resolve_shape,
    shape_matches
)
from .provider_transport import (
    HttpProviderTransport,
    ProviderTransport,
    SubmitResponse,
    PollResponse,
    request_json
)
from .account_services import (
    CreditService,
    CreditCheck,
    DebitReceipt,
    GalleryStore,
    HttpGalleryStore,
    InMemoryGalleryStore
)
from .preflight import PreflightGate
from .submission import (
    JobSubmitter,
    Immediate,
    Deferred,
    build_payload,
    enrich_prompt,
    normalize_outputs
)
from .content_filter import (
    DEFAULT_BANNED_TERMS,
    FilterReport,
    build_term_table,
    filter_results
)
from .result_sink import (
    CommitReport,
    ResultCollection,
    ResultSink
)

__all__ = [
    # Mode resolution
    "MediaShape",
    "ResolveResult",
    "resolve",
    "resolve_shape",
    "shape_matches",
    # Provider boundary
    "HttpProviderTransport",
    "ProviderTransport",
    "SubmitResponse",
    "PollResponse",
    "request_json",
    # Credits and gallery
    "CreditService",
    "CreditCheck",
    "DebitReceipt",
    "GalleryStore",
    "HttpGalleryStore",
    "InMemoryGalleryStore",
    # Submission pipeline
    "PreflightGate",
    "JobSubmitter",
    "Immediate",
    "Deferred",
    "build_payload",
    "enrich_prompt",
    "normalize_outputs",
    "DEFAULT_BANNED_TERMS",
    "FilterReport",
    "build_term_table",
    "filter_results",
    "CommitReport",
    "ResultCollection",
    "ResultSink"
]
