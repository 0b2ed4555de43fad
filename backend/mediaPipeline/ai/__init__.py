from .client import AIClient
