# tests/test_summarizer.py
from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

from summary_reader.core.config import SummarizationConfig
from summary_reader.core.errors import SummarizationError
from summary_reader.core.summarizer import SummaryService, estimate_tokens


def make_response(text):
    response = MagicMock()
    response.text = text
    return response


@pytest.fixture
def model():
    m = MagicMock()
    m.generate_content.return_value = make_response("x" * 40)
    return m


@pytest.fixture
def factory(model):
    return MagicMock(return_value=model)


@pytest.fixture
def service(factory):
    config = SummarizationConfig(api_key="test-key", model_name="gemini-test", max_retries=2)
    with patch("summary_reader.core.summarizer.genai.configure"):
        s = SummaryService(config, model_factory=factory)
    s._sleep = MagicMock()
    return s


class TestEstimateTokens:

    def test_rounds_up(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2


class TestSummarize:

    def test_result_shape(self, service):
        result = service.summarize("y" * 400, ratio=0.25)

        assert result == {
            "summary": "x" * 40,
            "originalTokens": 100,
            "summaryTokens": 10,
            "actualRatio": 0.1,
        }

    def test_prompt_carries_target_and_language(self, service, factory):
        service.summarize("y" * 400, ratio=0.5, language="French")

        args, kwargs = factory.call_args
        assert args == ("gemini-test",)
        prompt = kwargs["system_instruction"]
        assert "approximately 50 tokens" in prompt
        assert "current content is 100 tokens" in prompt
        assert "Provide requested summary in French language." in prompt

    def test_custom_prompt_replaces_default(self, service, factory):
        service.summarize("text", ratio=0.5, custom_prompt="Summarize like a pirate.")
        prompt = factory.call_args.kwargs["system_instruction"]
        assert prompt.startswith("Summarize like a pirate.")
        assert service.config.prompt not in prompt

    def test_images_are_appended_to_contents(self, service, model):
        image = {"mime_type": "image/png", "data": b"png"}
        service.summarize("chapter text", ratio=0.3, images=[image])

        contents = model.generate_content.call_args.args[0]
        assert contents[0] == "chapter text"
        assert contents[-1] == image

    def test_output_budget_has_a_floor(self, service, model):
        service.summarize("short", ratio=0.1)
        generation_config = model.generate_content.call_args.kwargs["generation_config"]
        assert generation_config.max_output_tokens == 100


class TestRetries:

    def test_retryable_error_then_success(self, service, model):
        model.generate_content.side_effect = [
            google_exceptions.ServiceUnavailable("busy"),
            make_response("done"),
        ]

        result = service.summarize("some text here", ratio=0.5)

        assert result["summary"] == "done"
        assert model.generate_content.call_count == 2
        service._sleep.assert_called_once_with(1.0)

    def test_gives_up_after_max_retries(self, service, model):
        model.generate_content.side_effect = google_exceptions.ResourceExhausted("quota")

        with pytest.raises(SummarizationError):
            service.summarize("some text here", ratio=0.5)

        assert model.generate_content.call_count == 3
        assert service._sleep.call_count == 2

    def test_non_retryable_error_fails_fast(self, service, model):
        model.generate_content.side_effect = ValueError("blocked")

        with pytest.raises(SummarizationError):
            service.summarize("some text here", ratio=0.5)

        assert model.generate_content.call_count == 1


class TestConstruction:

    def test_missing_api_key(self):
        with pytest.raises(ValueError, match="GOOGLE_API_KEY"):
            SummaryService(SummarizationConfig(api_key=""))

    def test_list_models_filters_generate_content(self, service):
        usable = MagicMock(supported_generation_methods=["generateContent"], display_name="Flash")
        usable.name = "models/gemini-flash"
        embed = MagicMock(supported_generation_methods=["embedContent"], display_name="Embed")
        embed.name = "models/embedding"

        with patch("summary_reader.core.summarizer.genai.list_models", return_value=[usable, embed]):
            models = service.list_models()

        assert models == [{"name": "models/gemini-flash", "alias": "Flash", "hostedBy": "google"}]
