"""authflow: email-verification to onboarding session orchestration."""

__version__ = "0.3.0"
