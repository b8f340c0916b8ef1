from .openai_client import OpenAIClient


class DeepSeekClient(OpenAIClient):
    """
    DeepSeek API client returning UnifiedResponse.

    The DeepSeek API is OpenAI-compatible, so the OpenAI SDK is reused with a
    custom base URL.
    Models:
        - "deepseek-chat": general extraction and tagging work
        - "deepseek-reasoner": slower, only worth it for hard analysis prompts
    """

    provider_name = "deepseek"
    base_url = "https://api.deepseek.com/v1"

    def __init__(self, api_key: str, model_name: str = "deepseek-chat", **kwargs):
        super().__init__(api_key, model_name=model_name, **kwargs)
