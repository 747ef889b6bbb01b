"""
Custom exceptions for the LLM completion client
"""


class LLMClientError(Exception):
    """Base exception for LLM client failures"""
    pass


class MissingAPIKeyError(LLMClientError):
    """Raised when the LLM API key is missing or empty"""

    def __init__(self, message: str = "LLM API key is required. Please configure LLM_API_KEY environment variable or Settings.llm_api_key"):
        self.message = message
        super().__init__(self.message)


class InvalidAPIKeyError(LLMClientError):
    """Raised when the LLM API key is invalid or authentication fails"""

    def __init__(self, message: str = "LLM API key is invalid or authentication failed. Please verify your API key configuration"):
        self.message = message
        super().__init__(self.message)


class LLMServiceError(LLMClientError):
    """Raised for non-authentication API errors, timeouts and empty responses"""
    pass
