# nfse_service/core/exceptions.py
from __future__ import annotations

from datetime import date
from typing import Optional


class NFSeError(Exception):
    """Base de todos os erros do cliente NFSe."""


class CertificadoError(NFSeError):
    pass


class CertificadoExpiradoError(CertificadoError):
    def __init__(self, validade: date):
        self.validade = validade
        super().__init__(f"Certificado expirado em {validade:%Y-%m-%d}")


class ArquivoChaveError(CertificadoError):
    pass


class XmlNaoDefinidoError(NFSeError):
    pass


class InscricaoMunicipalError(NFSeError):
    pass


class AssinaturaError(NFSeError):
    pass


class NFSeSoapError(NFSeError):
    """
    Falha na chamada de uma operação do webservice (HTTP, TLS ou SOAP Fault).
    """

    def __init__(self, operacao: str, detalhe: str, causa: Optional[BaseException] = None):
        self.operacao = operacao
        self.detalhe = detalhe
        self.causa = causa
        super().__init__(f"Falha ao {operacao} {detalhe}")
