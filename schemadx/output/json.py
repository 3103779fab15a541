"""JSON output rendering for diagnostic results."""
import json  # pylint: disable=import-self,redefined-builtin

from schemadx.models.results import DIAGNOSTIC_RESULT_ADAPTER, DiagnosticResult

def render_json(result: DiagnosticResult) -> str:
    """Render any diagnostic result variant as a JSON string."""
    return json.dumps(DIAGNOSTIC_RESULT_ADAPTER.dump_python(result, mode="json"), indent=2)
