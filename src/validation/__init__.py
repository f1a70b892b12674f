"""Field and form validation for enrollment steps."""

from .field_rules import (
    AgeEligibility,
    ErrorKind,
    ValidationResult,
    ValidationSeverity,
    SIGNATURE_INPUT_ERROR,
    age_eligibility,
    calculate_age,
    citizenship_document,
    date_of_birth,
    email_format,
    employer_phone,
    format_date,
    incarceration_disposition,
    income_source_complete,
    parse_date,
    password_strength,
    phone10,
    required_text,
    sanitize_name_input,
    sanitize_signature_input,
    signature_match,
    ssn9,
    supported_zip,
    zip5,
)

from .forms import (
    FieldSpec,
    FormValidationResult,
    FormValidator,
    StepForm,
    STEP_FORMS,
)

__all__ = [
    # Field rules
    'AgeEligibility',
    'ErrorKind',
    'ValidationResult',
    'ValidationSeverity',
    'SIGNATURE_INPUT_ERROR',
    'age_eligibility',
    'calculate_age',
    'citizenship_document',
    'date_of_birth',
    'email_format',
    'employer_phone',
    'format_date',
    'incarceration_disposition',
    'income_source_complete',
    'parse_date',
    'password_strength',
    'phone10',
    'required_text',
    'sanitize_name_input',
    'sanitize_signature_input',
    'signature_match',
    'ssn9',
    'supported_zip',
    'zip5',
    # Step forms
    'FieldSpec',
    'FormValidationResult',
    'FormValidator',
    'StepForm',
    'STEP_FORMS',
]
