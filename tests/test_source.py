from unittest.mock import MagicMock

import pytest
import requests

from cita_monitor.errors import FetchError
from cita_monitor.source import HtmlStatusSource

PAGE = """
<html><body>
<table>
  <tr><th>Servicio</th><th>Ultima apertura</th><th>Proxima apertura</th></tr>
  <tr><td>Legalizaciones</td><td>10/01/2024</td><td>fecha por confirmar</td></tr>
  <tr>
    <td>Pasaportes
        renovación y primera vez</td>
    <td>
      05/01/2024
    </td>
    <td>12/02/2024 a las 11:00</td>
  </tr>
</table>
</body></html>
"""


def _session(text="", status_error=None, get_error=None):
    session = MagicMock()
    if get_error:
        session.get.side_effect = get_error
    response = session.get.return_value
    response.text = text
    if status_error:
        response.raise_for_status.side_effect = status_error
    return session


def test_parse_tracked_row():
    snapshot = HtmlStatusSource().parse(PAGE)

    assert snapshot.title.startswith("Pasaportes")
    assert snapshot.last_known_date == "05/01/2024"
    assert snapshot.current_date == "12/02/2024 a las 11:00"


def test_missing_row_gives_empty_snapshot():
    snapshot = HtmlStatusSource().parse("<table><tr><td>Visas</td><td>x</td></tr></table>")

    assert snapshot.is_empty()
    assert snapshot.current_date == ""


def test_short_row_is_padded():
    snapshot = HtmlStatusSource().parse("<table><tr><td>Pasaportes renovación</td></tr></table>")

    assert snapshot.title == "Pasaportes renovación"
    assert snapshot.last_known_date == ""
    assert snapshot.current_date == ""


def test_custom_keyword():
    snapshot = HtmlStatusSource(row_keyword="Legalizaciones").parse(PAGE)

    assert snapshot.current_date == "fecha por confirmar"


def test_fetch_uses_session_with_timeout():
    session = _session(text=PAGE)
    source = HtmlStatusSource(timeout=7, session=session)

    snapshot = source.fetch("https://example.test/citas.html")

    assert snapshot.last_known_date == "05/01/2024"
    args, kwargs = session.get.call_args
    assert args == ("https://example.test/citas.html",)
    assert kwargs["timeout"] == 7
    assert "User-Agent" in kwargs["headers"]


@pytest.mark.parametrize("kwargs", [
    {"status_error": requests.HTTPError("503 Server Error")},
    {"get_error": requests.ConnectionError("connection refused")},
    {"get_error": requests.Timeout("read timed out")},
])
def test_fetch_errors_become_fetch_error(kwargs):
    source = HtmlStatusSource(session=_session(**kwargs))

    with pytest.raises(FetchError):
        source.fetch("https://example.test/citas.html")


def test_blank_cell_keeps_its_position():
    source = HtmlStatusSource()

    snapshot = source.parse(
        "<table><tr><td>Pasaportes renovación</td><td>&nbsp;</td><td>12/02/2024</td></tr></table>"
    )

    assert snapshot.last_known_date == ""
    assert snapshot.current_date == "12/02/2024"
