import pytest
import requests

from conftest import CNPJ, SENHA, SOAP_FAULT
from nfse_service.core.soap_client import SoapClient
from requests_pkcs12 import Pkcs12Adapter


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.kwargs = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def post(self, **kwargs):
        self.kwargs = kwargs
        return self.response


def _response(status, texto):
    resp = requests.Response()
    resp.status_code = status
    resp._content = texto.encode("utf-8")
    resp.encoding = "utf-8"
    resp.headers["Content-Type"] = "text/xml; charset=utf-8"
    resp.url = "https://exemplo/ws/nfse.asmx"
    return resp


def test_post_xml_headers_e_historico(monkeypatch):
    session = FakeSession(_response(200, "<ok/>"))
    client = SoapClient(cert_path="/tmp/all_cert.pem", timeout=15)
    monkeypatch.setattr(client, "_get_session", lambda: session)

    texto = client.post_xml("https://exemplo/ws/nfse.asmx", "<envelope/>", "http://nfse.abrasf.org.br/X")

    assert texto == "<ok/>"
    headers = session.kwargs["headers"]
    assert headers["Content-Type"] == "text/xml; charset=utf-8"
    assert headers["SOAPAction"] == '"http://nfse.abrasf.org.br/X"'
    assert session.kwargs["timeout"] == 15
    assert client.ultima_requisicao == "<envelope/>"
    assert client.ultima_resposta == "<ok/>"
    assert client.ultimos_headers_recebidos["Content-Type"].startswith("text/xml")


def test_post_xml_fault_com_http_500(monkeypatch):
    client = SoapClient(cert_path="/tmp/all_cert.pem")
    monkeypatch.setattr(client, "_get_session", lambda: FakeSession(_response(500, SOAP_FAULT)))

    assert client.post_xml("https://exemplo", "<e/>") == SOAP_FAULT


def test_post_xml_erro_http(monkeypatch):
    client = SoapClient(cert_path="/tmp/all_cert.pem")
    monkeypatch.setattr(client, "_get_session", lambda: FakeSession(_response(404, "not found")))

    with pytest.raises(requests.HTTPError):
        client.post_xml("https://exemplo", "<e/>")


def test_session_com_pfx(pfx_dir):
    client = SoapClient(pfx_path=str(pfx_dir / f"{CNPJ}.pfx"), pfx_password=SENHA, verify=False)
    session = client._get_session()

    assert isinstance(session.get_adapter("https://exemplo"), Pkcs12Adapter)
    assert session.verify is False


def test_session_com_pem():
    client = SoapClient(cert_path="/tmp/all_cert.pem")
    session = client._get_session()

    assert session.cert == "/tmp/all_cert.pem"
    assert session.verify is True
