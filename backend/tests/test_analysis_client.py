"""
Gemini analysis client: retry with 1s/2s backoff, last error surfaced,
response validation.
"""
import httpx
import pytest

from smarthire.errors import UpstreamAnalysisFailure
from smarthire.services.analysis_client import AnalysisClient, extract_report_text

PAYLOAD = {
    "contents": [{"parts": [{"text": "JD + CV"}]}],
    "systemInstruction": {"parts": [{"text": "You are a recruiter"}]},
    "generationConfig": {"responseMimeType": "application/json"},
}

GOOD_RESPONSE = {"candidates": [{"content": {"parts": [{"text": "{\"suitabilityScore\": 82}"}]}}]}


class _Recorder:
    def __init__(self):
        self.sleeps = []

    async def sleep(self, seconds):
        self.sleeps.append(seconds)


def _client(handler, recorder, api_key="test-key"):
    return AnalysisClient(
        api_key=api_key,
        transport=httpx.MockTransport(handler),
        sleep=recorder.sleep,
    )


class TestRetry:
    @pytest.mark.asyncio
    async def test_first_attempt_success_no_sleep(self):
        recorder = _Recorder()
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=GOOD_RESPONSE)

        result = await _client(handler, recorder).generate(PAYLOAD)
        assert result == GOOD_RESPONSE
        assert recorder.sleeps == []
        assert len(requests) == 1
        assert requests[0].url.params["key"] == "test-key"
        assert requests[0].url.path.endswith("/models/gemini-2.0-flash:generateContent")

    @pytest.mark.asyncio
    async def test_three_failures_sleep_one_then_two(self):
        recorder = _Recorder()
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            return httpx.Response(503, json={"error": {"message": f"overloaded #{calls['n']}"}})

        with pytest.raises(UpstreamAnalysisFailure) as exc_info:
            await _client(handler, recorder).generate(PAYLOAD)

        assert calls["n"] == 3
        assert recorder.sleeps == [1, 2]
        assert exc_info.value.message == "overloaded #3"
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_recovers_on_third_attempt(self):
        recorder = _Recorder()
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json=GOOD_RESPONSE)

        result = await _client(handler, recorder).generate(PAYLOAD)
        assert result == GOOD_RESPONSE
        assert recorder.sleeps == [1, 2]

    @pytest.mark.asyncio
    async def test_error_body_with_200_is_a_failure(self):
        recorder = _Recorder()

        def handler(request):
            return httpx.Response(200, json={"error": {"message": "API key not valid"}})

        with pytest.raises(UpstreamAnalysisFailure, match="API key not valid"):
            await _client(handler, recorder).generate(PAYLOAD)

    @pytest.mark.asyncio
    async def test_missing_key_fails_without_calls(self):
        recorder = _Recorder()

        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(UpstreamAnalysisFailure, match="API key missing"):
            await _client(handler, recorder, api_key="").generate(PAYLOAD)
        assert recorder.sleeps == []


class TestExtractReportText:
    def test_returns_first_candidate_text(self):
        assert extract_report_text(GOOD_RESPONSE) == "{\"suitabilityScore\": 82}"

    @pytest.mark.parametrize("response", [
        {},
        {"candidates": []},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": {"parts": [{"text": ""}]}}]},
        {"candidates": [{"finishReason": "SAFETY"}]},
    ])
    def test_invalid_shapes(self, response):
        with pytest.raises(UpstreamAnalysisFailure, match="AI returned invalid data."):
            extract_report_text(response)
