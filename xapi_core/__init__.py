"""
xAPI Core — Statement integrity & transport-encoding engine.

Immutable Statement model, LanguageMap lookup, content-addressed
attachments, multipart/mixed envelopes and JWS statement signing.

__version__ is the SDK version.  The xAPI version sent to an LRS is
configured on the client (xapi_client.XapiClient).
"""

__version__ = "0.1.0"

from .errors import (
    XapiError,
    MalformedIdentifier,
    ConflictingAttachmentRepresentation,
    MissingOrAmbiguousInverseFunctionalIdentifier,
    InvalidLanguageTag,
    StructuralConstraintViolation,
    SignatureInvalid,
    EncodingFailure,
)
from .language import (
    LanguageMap,
    UNDETERMINED,
    is_well_formed_tag,
    is_iso_tag,
    parse_ranges,
)
from .model import (
    About,
    Account,
    Activity,
    ActivityDefinition,
    Actor,
    Agent,
    Attachment,
    Context,
    ContextActivities,
    Group,
    InteractionComponent,
    InteractionType,
    Result,
    Score,
    SIGNATURE_USAGE_TYPE,
    Statement,
    StatementObject,
    StatementReference,
    StatementResult,
    SubStatement,
    Verb,
    export_json_schema,
    format_timestamp,
)
from .canonical import canonicalize
from .crypto import (
    sha256_hex,
    default_algorithm_for,
    generate_keypair,
    jws_sign,
    jws_verify,
    private_key_to_pem,
    public_key_to_pem,
    private_key_from_pem,
    public_key_from_pem,
    SUPPORTED_ALGORITHMS,
)
from .codec import (
    encode_statement,
    encode_statements,
    decode_statement,
    decode_statements,
    decode_statement_ids,
    decode_statement_result,
    decode_about,
    decode_multipart_statement,
    decode_multipart_statement_result,
)
from .multipart import EncodedBody, build_body, parse_body
from .signing import (
    VerificationResult,
    sign_statement,
    verify_statement,
    signature_attachments,
)
from .validation import (
    Rule,
    RULES,
    Violation,
    ValidationConfig,
    validate,
    ensure_valid,
)
