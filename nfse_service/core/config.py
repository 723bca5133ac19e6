# nfse_service/core/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .enums import Ambiente

# WebISS (padrão ABRASF 2.02). Outros provedores: informe url_servico.
URL_HOMOLOGACAO = "https://homologacao.webiss.com.br/ws/nfse.asmx"
URL_PRODUCAO = "https://simoesfilhoba.webiss.com.br/ws/nfse.asmx"

URLS_SERVICO = {
    Ambiente.HOMOLOGACAO: URL_HOMOLOGACAO,
    Ambiente.PRODUCAO: URL_PRODUCAO,
}

VERSAO_DADOS = "2.02"
ABRASF_NS = "http://www.abrasf.org.br/nfse.xsd"

# Cabeçalho enviado em nfseCabecMsg
DEFAULT_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    f'<cabecalho xmlns="{ABRASF_NS}" versao="{VERSAO_DADOS}">'
    f"<versaoDados>{VERSAO_DADOS}</versaoDados>"
    "</cabecalho>"
)


def ambiente_de(producao: bool) -> Ambiente:
    return Ambiente.PRODUCAO if producao else Ambiente.HOMOLOGACAO


def resolver_url_servico(ambiente: Ambiente, url_servico: Optional[str] = None) -> str:
    """URL informada pelo usuário ou a padrão do WebISS para o ambiente."""
    if url_servico:
        return url_servico
    return URLS_SERVICO[ambiente]


def _env_bool(nome: str, padrao: bool = False) -> bool:
    valor = os.getenv(nome)
    if valor is None or valor.strip() == "":
        return padrao
    return valor.strip().lower() in {"1", "true", "sim", "s", "yes"}


@dataclass
class NFSeConfig:
    """
    Configuração do cliente NFSe.

    - cnpj: CNPJ do prestador; o PFX deve se chamar <cnpj>.pfx
    - senha: senha do PFX
    - diretorio_certificados: pasta do PFX e das chaves PEM extraídas
    - producao: False = homologação (padrão)
    - url_servico: sobrescreve as URLs padrão do WebISS
    """

    cnpj: str
    senha: str
    diretorio_certificados: str
    producao: bool = False
    url_servico: Optional[str] = None
    inscricao_municipal: Optional[str] = None
    cabecalho: str = DEFAULT_HEADER
    timeout: int = 30
    verificar_ssl: bool = True
    debug: bool = False

    @property
    def ambiente(self) -> Ambiente:
        return ambiente_de(self.producao)

    @property
    def url(self) -> str:
        return resolver_url_servico(self.ambiente, self.url_servico)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "NFSeConfig":
        """
        Lê a configuração de variáveis de ambiente (e do .env, se existir).
        """
        load_dotenv(dotenv_path)

        cnpj = os.getenv("NFSE_CNPJ")
        senha = os.getenv("NFSE_PFX_SENHA")
        diretorio = os.getenv("NFSE_CERT_DIR")

        faltando = [
            nome
            for nome, valor in (
                ("NFSE_CNPJ", cnpj),
                ("NFSE_PFX_SENHA", senha),
                ("NFSE_CERT_DIR", diretorio),
            )
            if not valor
        ]
        if faltando:
            raise ValueError(f"Variáveis de ambiente não definidas: {', '.join(faltando)}")

        return cls(
            cnpj=cnpj,
            senha=senha,
            diretorio_certificados=diretorio,
            producao=_env_bool("NFSE_PRODUCAO"),
            url_servico=os.getenv("NFSE_URL") or None,
            inscricao_municipal=os.getenv("NFSE_INSCRICAO_MUNICIPAL") or None,
            timeout=int(os.getenv("NFSE_TIMEOUT", "30")),
            verificar_ssl=_env_bool("NFSE_VERIFICAR_SSL", True),
            debug=_env_bool("NFSE_DEBUG"),
        )
