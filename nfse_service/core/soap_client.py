# nfse_service/core/soap_client.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional
import logging

import requests
from requests_pkcs12 import Pkcs12Adapter

logger = logging.getLogger(__name__)


@dataclass
class SoapClient:
    """
    Cliente SOAP 1.1 com certificado digital de cliente.
    - pfx_path/pfx_password: TLS direto do .pfx
    - cert_path: PEM com certificado + chave (all_cert.pem)
    """

    pfx_path: Optional[str] = None      # Caminho do arquivo .pfx
    pfx_password: Optional[str] = None  # Senha do PFX
    cert_path: Optional[str] = None     # Alternativa ao PFX
    timeout: int = 30                   # Timeout padrão
    verify: bool = True

    ultima_requisicao: Optional[str] = field(default=None, init=False, repr=False)
    ultima_resposta: Optional[str] = field(default=None, init=False, repr=False)
    ultimos_headers_enviados: Dict[str, str] = field(default_factory=dict, init=False, repr=False)
    ultimos_headers_recebidos: Dict[str, str] = field(default_factory=dict, init=False, repr=False)

    def _get_session(self) -> requests.Session:
        """
        Cria uma sessão HTTPS configurada com o certificado.
        """
        session = requests.Session()
        if self.pfx_path:
            session.mount("https://", Pkcs12Adapter(
                pkcs12_filename=self.pfx_path,
                pkcs12_password=self.pfx_password or "",
            ))
        elif self.cert_path:
            session.cert = self.cert_path
        session.verify = self.verify
        return session

    def post_xml(self, url: str, xml: str, soap_action: Optional[str] = None) -> str:
        """
        Envia o envelope via POST para o endpoint informado.

        HTTP 500 com SOAP Fault é devolvido para tratamento de quem chamou;
        demais erros HTTP lançam requests.HTTPError.
        """
        data = xml.encode("utf-8")
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "Content-Length": str(len(data)),
        }

        if soap_action:
            headers["SOAPAction"] = f'"{soap_action}"'

        self.ultima_requisicao = xml
        self.ultimos_headers_enviados = dict(headers)

        logger.debug("POST %s SOAPAction=%s", url, soap_action)

        with self._get_session() as session:
            response = session.post(
                url=url,
                data=data,
                headers=headers,
                timeout=self.timeout,
            )

        self.ultima_resposta = response.text
        self.ultimos_headers_recebidos = dict(response.headers)

        logger.debug("Resposta HTTP %s de %s", response.status_code, url)

        # erro HTTP? (SOAP Fault vem com 500)
        if response.status_code == 500 and "Fault" in response.text:
            return response.text
        response.raise_for_status()

        return response.text

