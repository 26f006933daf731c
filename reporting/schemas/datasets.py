"""
reporting/schemas/datasets.py

Built-in schemas for the lending, arrears, liquidations, call-center and
complaints reports. Header synonyms mirror the export formats produced by
the upstream loan-management and telephony systems.
"""

from __future__ import annotations

from reporting.schemas.registry import BusinessRule, DatasetSchema, DerivedField, FieldDefinition

LOAN_STAGES: tuple[str, ...] = (
    "Application",
    "Underwriting",
    "Approved",
    "Funded",
    "Active",
    "Arrears",
    "Default",
    "Repaid",
    "Written Off",
)

PAYMENT_STATUSES: tuple[str, ...] = ("Current", "Late", "Missed", "Default", "Settled", "Written Off")

LEAD_SOURCES: tuple[str, ...] = (
    "Direct",
    "Broker",
    "Online",
    "Referral",
    "Marketing Campaign",
    "Social Media",
    "Other",
)

CALL_DISPOSITIONS: tuple[str, ...] = ("Answered", "Abandoned", "Forwarded", "Busy", "No Answer", "Voicemail")

COMPLAINT_CATEGORIES: tuple[str, ...] = (
    "Payment Issues",
    "Customer Service",
    "Product Complaint",
    "Process Complaint",
    "Billing Dispute",
    "Data Protection",
    "Other",
)

COMPLAINT_DECISIONS: tuple[str, ...] = ("Upheld", "Partially Upheld", "Not Upheld", "Withdrawn", "Referred", "Pending")

# ---------------------------------------------------------------------------
# Lending volume / arrears
# ---------------------------------------------------------------------------


def _loan_fields(*, arrears: bool) -> tuple[FieldDefinition, ...]:
    return (
        FieldDefinition(
            name="customer_id",
            label="Customer ID",
            type="string",
            required=True,
            synonyms=("CustomerID", "Customer ID", "customerId"),
        ),
        FieldDefinition(
            name="funded_app_count",
            label="Funded App Count",
            type="number",
            required=True,
            synonyms=("FundedAppCount", "Funded App Count"),
            minimum=0,
        ),
        FieldDefinition(
            name="tier_name",
            label="Tier Name",
            type="category",
            synonyms=("TierName", "Tier Name", "Lead Source"),
            allowed_values=LEAD_SOURCES,
        ),
        FieldDefinition(
            name="stage",
            label="Stage",
            type="category",
            required=True,
            synonyms=("Current Stage",),
            allowed_values=LOAN_STAGES,
        ),
        FieldDefinition(
            name="stage_date",
            label="Stage Date",
            type="date",
            required=True,
            synonyms=("StageDate", "Stage Date"),
        ),
        FieldDefinition(
            name="payment_status",
            label="Payment Status",
            type="category",
            required=arrears,
            synonyms=("PaymentStatus", "Payment Status"),
            allowed_values=PAYMENT_STATUSES,
        ),
        FieldDefinition(
            name="funded_date",
            label="Funded Date",
            type="date",
            synonyms=("FundedDate", "Funded Date"),
        ),
        FieldDefinition(
            name="last_payment_date",
            label="Last Payment Date",
            type="date",
            synonyms=("LastPaymentDate", "Last Payment Date"),
        ),
        FieldDefinition(
            name="issued_amount",
            label="Issued Amount",
            type="currency",
            required=True,
            synonyms=("IssuedAmount", "Issued Amount"),
            minimum=0,
        ),
        FieldDefinition(
            name="total_due",
            label="Total Due",
            type="currency",
            required=arrears,
            synonyms=("TotalDue", "Total Due"),
            minimum=0,
        ),
        FieldDefinition(
            name="payment",
            label="Payment",
            type="currency",
            synonyms=("Payment Amount",),
            minimum=0,
        ),
    )


_OUTSTANDING_BALANCE = DerivedField(
    definition=FieldDefinition(name="outstanding_balance", label="Outstanding Balance", type="currency"),
    rule="difference",
    inputs=("total_due", "payment"),
)

LENDING_VOLUME_SCHEMA = DatasetSchema(
    dataset_type="lending-volume",
    label="Lending Volume",
    fields=_loan_fields(arrears=False),
    primary_date_field="stage_date",
    identity_fields=("customer_id", "funded_app_count"),
    indexed_fields=("customer_id", "stage", "tier_name"),
    searchable_fields=("customer_id", "tier_name", "stage"),
    derived_fields=(_OUTSTANDING_BALANCE,),
)

ARREARS_SCHEMA = DatasetSchema(
    dataset_type="arrears",
    label="Arrears",
    fields=_loan_fields(arrears=True),
    primary_date_field="stage_date",
    identity_fields=("customer_id", "funded_app_count"),
    indexed_fields=("customer_id", "payment_status", "stage"),
    searchable_fields=("customer_id", "payment_status", "stage"),
    derived_fields=(_OUTSTANDING_BALANCE,),
    business_rules=(
        BusinessRule(
            kind="not_greater_than",
            field_name="payment",
            other_field="total_due",
            message="Payment exceeds total due.",
        ),
    ),
)

# ---------------------------------------------------------------------------
# Liquidations
# ---------------------------------------------------------------------------

LIQUIDATIONS_SCHEMA = DatasetSchema(
    dataset_type="liquidations",
    label="Liquidations",
    fields=(
        FieldDefinition(
            name="funded_year",
            label="Funded Year",
            type="number",
            required=True,
            synonyms=("FundedYear", "Funded Year"),
            minimum=2000,
            maximum=2100,
        ),
        FieldDefinition(
            name="funded_month",
            label="Funded Month",
            type="number",
            required=True,
            synonyms=("FundedMonth", "Funded Month"),
            minimum=1,
            maximum=12,
        ),
        FieldDefinition(
            name="funded",
            label="Funded",
            type="currency",
            required=True,
            synonyms=("Total Funded",),
            minimum=0,
        ),
        FieldDefinition(
            name="collected",
            label="Collected",
            type="currency",
            required=True,
            synonyms=("Total Collected",),
            minimum=0,
        ),
        FieldDefinition(
            name="actual_liquidation_rate",
            label="Actual Liquidation Rate %",
            type="percentage",
            required=True,
            synonyms=("Actual Liquidation rate %", "Actual Liquidation Rate"),
        ),
        FieldDefinition(
            name="future_scheduled",
            label="Future Scheduled",
            type="currency",
            synonyms=("FutureScheduled", "Future Scheduled"),
        ),
        FieldDefinition(
            name="dmp_iva_collected",
            label="DMP/IVA Collected",
            type="currency",
            synonyms=("DMP/IVA", "DMP IVA"),
        ),
        FieldDefinition(
            name="all_together",
            label="All Together",
            type="currency",
            required=True,
            synonyms=("AllTogether", "All Together"),
        ),
        FieldDefinition(
            name="forecast_liquidation_rate",
            label="Forecast Liquidation Rate %",
            type="percentage",
            synonyms=("Forecast Liquidation rate %", "Forecast Liquidation Rate"),
        ),
        FieldDefinition(
            name="total_due_not_scheduled",
            label="Total Due Not Scheduled",
            type="currency",
            synonyms=("TotalDueNotScheduled", "Total Due Not Scheduled"),
        ),
    ),
    primary_date_field="funded_period",
    identity_fields=("funded_year", "funded_month"),
    indexed_fields=("funded_year",),
    searchable_fields=("funded_year", "funded_month"),
    derived_fields=(
        DerivedField(
            definition=FieldDefinition(name="funded_period", label="Funded Period", type="date"),
            rule="month_start",
            inputs=("funded_year", "funded_month"),
        ),
        DerivedField(
            definition=FieldDefinition(name="collection_rate", label="Collection Rate %", type="percentage"),
            rule="percent_of",
            inputs=("all_together", "funded"),
        ),
    ),
    business_rules=(
        BusinessRule(
            kind="not_greater_than",
            field_name="collected",
            other_field="funded",
            message="Collected amount exceeds funded amount.",
        ),
    ),
)

# ---------------------------------------------------------------------------
# Call center
# ---------------------------------------------------------------------------

CALL_CENTER_SCHEMA = DatasetSchema(
    dataset_type="call-center",
    label="Call Center",
    fields=(
        FieldDefinition(
            name="call_id",
            label="Call ID",
            type="string",
            required=True,
            synonyms=("Call ID", "CallID"),
        ),
        FieldDefinition(
            name="date_time",
            label="Date/Time",
            type="datetime",
            required=True,
            synonyms=("Date/Time", "DateTime"),
        ),
        FieldDefinition(
            name="agent_name",
            label="Agent Name",
            type="string",
            required=True,
            synonyms=("Agent Name", "AgentName"),
        ),
        FieldDefinition(
            name="answered_date_time",
            label="Answered Date/Time",
            type="datetime",
            synonyms=("Answered Date/Time", "AnsweredDateTime"),
        ),
        FieldDefinition(
            name="from_number",
            label="From",
            type="string",
            synonyms=("From", "From Number"),
        ),
        FieldDefinition(
            name="disposition",
            label="Disposition",
            type="category",
            required=True,
            allowed_values=CALL_DISPOSITIONS,
        ),
        FieldDefinition(
            name="talk_time",
            label="Talk Time",
            type="number",
            synonyms=("Talk Time", "TalkTime"),
            minimum=0,
        ),
    ),
    primary_date_field="date_time",
    identity_fields=("call_id",),
    indexed_fields=("agent_name", "disposition"),
    searchable_fields=("call_id", "agent_name", "from_number"),
    derived_fields=(
        DerivedField(
            definition=FieldDefinition(name="answer_delay_seconds", label="Answer Delay (s)", type="number"),
            rule="seconds_between",
            inputs=("date_time", "answered_date_time"),
        ),
    ),
)

# ---------------------------------------------------------------------------
# Complaints
# ---------------------------------------------------------------------------

COMPLAINTS_SCHEMA = DatasetSchema(
    dataset_type="complaints",
    label="Complaints",
    fields=(
        FieldDefinition(
            name="customer_id",
            label="Customer ID",
            type="string",
            required=True,
            synonyms=("CustomerID", "Customer ID", "customerId"),
        ),
        FieldDefinition(
            name="count",
            label="Count",
            type="number",
            required=True,
            synonyms=("Complaint Count",),
            minimum=0,
        ),
        FieldDefinition(
            name="received_date",
            label="Received Date",
            type="date",
            required=True,
            synonyms=("ReceivedDate", "Received Date"),
        ),
        FieldDefinition(
            name="resolved_date",
            label="Resolved Date",
            type="date",
            synonyms=("ResolvedDate", "Resolved Date"),
        ),
        FieldDefinition(
            name="days_to_resolve",
            label="Days To Resolve",
            type="number",
            synonyms=("DaysToResolve", "Days To Resolve"),
            minimum=0,
        ),
        FieldDefinition(
            name="category",
            label="Category",
            type="category",
            required=True,
            synonyms=("Complaint Category",),
            allowed_values=COMPLAINT_CATEGORIES,
        ),
        FieldDefinition(
            name="decision",
            label="Decision",
            type="category",
            synonyms=("Resolution Decision",),
            allowed_values=COMPLAINT_DECISIONS,
        ),
    ),
    primary_date_field="received_date",
    identity_fields=("customer_id", "received_date", "category"),
    indexed_fields=("customer_id", "category", "decision"),
    searchable_fields=("customer_id", "category", "decision"),
    derived_fields=(
        DerivedField(
            definition=FieldDefinition(name="resolution_days", label="Resolution Days", type="number"),
            rule="days_between",
            inputs=("received_date", "resolved_date"),
        ),
    ),
    business_rules=(
        BusinessRule(
            kind="not_before",
            field_name="resolved_date",
            other_field="received_date",
            message="Resolved date is before received date.",
        ),
    ),
)

BUILTIN_SCHEMAS: tuple[DatasetSchema, ...] = (
    LENDING_VOLUME_SCHEMA,
    ARREARS_SCHEMA,
    LIQUIDATIONS_SCHEMA,
    CALL_CENTER_SCHEMA,
    COMPLAINTS_SCHEMA,
)
