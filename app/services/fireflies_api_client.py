import json
import logging
from collections.abc import Mapping
from typing import Any
from urllib import error, request

logger = logging.getLogger(__name__)


class FirefliesApiError(Exception):
    pass


class FirefliesTranscriptNotReadyError(FirefliesApiError):
    pass


class FirefliesApiClient:
    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout_seconds: float = 10.0,
        user_agent: str = "FirefliesAttendanceLog/1.0",
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent

    def fetch_transcript_analytics(self, transcript_id: str) -> dict[str, Any]:
        # Speaker analytics are a paid-plan feature; without them the API
        # answers the first query with a GraphQL error.
        queries = (
            """
            query TranscriptAnalytics($id: String!) {
              transcript(id: $id) {
                id
                title
                date
                dateString
                duration
                transcript_url
                participants
                analytics {
                  speakers {
                    name
                    user_id
                    user_email
                    word_count
                    questions
                    duration_sec
                  }
                }
              }
            }
            """,
            """
            query TranscriptAnalytics($id: String!) {
              transcript(id: $id) {
                id
                title
                date
                dateString
                duration
                transcript_url
                participants
              }
            }
            """,
        )

        graphql_error: FirefliesApiError | None = None
        for graphql_query in queries:
            try:
                return self._fetch_transcript_with_query(
                    transcript_id=transcript_id,
                    graphql_query=graphql_query,
                )
            except FirefliesTranscriptNotReadyError:
                raise
            except FirefliesApiError as exc:
                if "GraphQL error" not in str(exc):
                    raise
                logger.warning(
                    "Fireflies query rejected, retrying with reduced query transcript_id=%s error=%s",
                    transcript_id,
                    exc,
                )
                graphql_error = exc

        if graphql_error:
            raise graphql_error
        raise FirefliesApiError("Fireflies transcript query failed.")

    def _fetch_transcript_with_query(
        self,
        transcript_id: str,
        graphql_query: str,
    ) -> dict[str, Any]:
        payload = {"query": graphql_query, "variables": {"id": transcript_id}}
        raw_payload = json.dumps(payload).encode("utf-8")
        req = request.Request(
            self.api_url,
            data=raw_payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": self.user_agent,
            },
            method="POST",
        )

        try:
            with request.urlopen(req, timeout=self.timeout_seconds) as response:
                response_body = response.read()
        except TimeoutError as exc:
            raise FirefliesApiError("Fireflies API request timed out.") from exc
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="ignore")
            raise FirefliesApiError(
                f"Fireflies API HTTP {exc.code}: {body or 'empty response body'}"
            ) from exc
        except error.URLError as exc:
            raise FirefliesApiError(f"Fireflies API connection error: {exc.reason}") from exc

        try:
            parsed_body = json.loads(response_body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise FirefliesApiError("Fireflies API returned invalid JSON.") from exc

        if not isinstance(parsed_body, Mapping):
            raise FirefliesApiError("Fireflies API response is not a JSON object.")

        data = parsed_body.get("data")
        transcript = data.get("transcript") if isinstance(data, Mapping) else None
        if isinstance(transcript, Mapping):
            return dict(transcript)

        # A resolved but empty transcript means processing has not finished.
        errors_payload = parsed_body.get("errors")
        if errors_payload and not (isinstance(data, Mapping) and "transcript" in data):
            raise FirefliesApiError(f"Fireflies API GraphQL error: {errors_payload}")

        raise FirefliesTranscriptNotReadyError(
            f"Fireflies transcript {transcript_id} is not available yet."
        )
