from grocery_receipts.schemas.base import (  # noqa: F401
    ApiModel,
    BatchResponse,
    CommonItem,
    ExtractedReceipt,
    InsightsGenerateRequest,
    InsightsRollup,
    ItemFailure,
    LineItem,
    MigrateRequest,
    NarrativeInsights,
    ProcessRequest,
    ReceiptOut,
    SessionSummary,
    UploadResponse,
    UserOut,
    UserUpdate,
    parse_amount,
    parse_datetime,
)
