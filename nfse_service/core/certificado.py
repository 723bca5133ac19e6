# nfse_service/core/certificado.py
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)
from cryptography.hazmat.primitives.serialization.pkcs12 import (
    load_key_and_certificates,
)

from .exceptions import (
    ArquivoChaveError,
    CertificadoError,
    CertificadoExpiradoError,
)

logger = logging.getLogger(__name__)

# Nomes dos arquivos gerados dentro do diretório de certificados
PRIVATE_KEY_FILE = "privateKey.pem"
PUBLIC_KEY_FILE = "publicKey.pem"
ALL_CERT_FILE = "all_cert.pem"


@dataclass
class CertificadoA1:
    """
    Material extraído de um certificado A1 (.pfx).

    - pem_key: chave privada PKCS#8 sem senha
    - pem_cert: certificado X.509 em PEM
    - x509_base64: corpo do certificado sem cabeçalho PEM e sem quebras
    """

    pem_key: bytes
    pem_cert: bytes
    x509_base64: str
    validade: date
    dias_para_expirar: Optional[int] = None

    def chave_publica(self) -> str:
        return chave_publica_pem(self.pem_cert)


@dataclass
class ArquivosChave:
    private_key: Path
    public_key: Path
    all_cert: Path


def caminhos_chaves(diretorio: str | Path) -> ArquivosChave:
    base = Path(diretorio)
    return ArquivosChave(
        private_key=base / PRIVATE_KEY_FILE,
        public_key=base / PUBLIC_KEY_FILE,
        all_cert=base / ALL_CERT_FILE,
    )


def chave_publica_pem(pem_cert: bytes) -> str:
    """Chave pública do certificado em PEM (SubjectPublicKeyInfo)."""
    cert = x509.load_pem_x509_certificate(pem_cert, default_backend())
    return cert.public_key().public_bytes(
        encoding=Encoding.PEM,
        format=PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def _validade_utc(cert: x509.Certificate) -> date:
    # cryptography >= 42 expõe not_valid_after_utc
    not_after = getattr(cert, "not_valid_after_utc", None)
    if not_after is None:
        not_after = cert.not_valid_after.replace(tzinfo=timezone.utc)
    return not_after.astimezone(timezone.utc).date()


def carregar_pfx(pfx_path: str | Path, senha: str) -> CertificadoA1:
    """
    Lê o .pfx e devolve chave privada e certificado em PEM.
    """
    try:
        data = Path(pfx_path).read_bytes()
        key, cert, _extra = load_key_and_certificates(
            data,
            senha.encode("utf-8") if senha else None,
            backend=default_backend(),
        )
    except (OSError, ValueError) as exc:
        raise CertificadoError(
            "Certificado não pode ser lido. Verifique se a senha está correta. "
            "É possível que o arquivo esteja corrompido ou em formato inválido."
        ) from exc

    if key is None or cert is None:
        raise CertificadoError("Não foi possível carregar chave/certificado do PFX")

    pem_key = key.private_bytes(
        encoding=Encoding.PEM,
        format=PrivateFormat.PKCS8,
        encryption_algorithm=NoEncryption(),
    )
    pem_cert = cert.public_bytes(Encoding.PEM)
    x509_base64 = base64.b64encode(cert.public_bytes(Encoding.DER)).decode("ascii")

    return CertificadoA1(
        pem_key=pem_key,
        pem_cert=pem_cert,
        x509_base64=x509_base64,
        validade=_validade_utc(cert),
    )


def validar_validade(pem_cert: bytes, agora: Optional[datetime] = None) -> int:
    """
    Verifica se o certificado está dentro da validade.

    A data de validade é considerada à 00:00 UTC do dia do notAfter.
    Retorna quantos dias faltam para expirar; lança CertificadoExpiradoError
    se já expirou.
    """
    agora = agora or datetime.now(timezone.utc)
    cert = x509.load_pem_x509_certificate(pem_cert, default_backend())
    validade = _validade_utc(cert)

    limite = datetime(validade.year, validade.month, validade.day, tzinfo=timezone.utc)
    if limite < agora:
        raise CertificadoExpiradoError(validade)

    dias = (validade - agora.astimezone(timezone.utc).date()).days
    if dias <= 30:
        logger.warning("Certificado expira em %s dia(s) (%s)", dias, validade.isoformat())
    return dias


def gravar_chaves(certificado: CertificadoA1, diretorio: str | Path) -> ArquivosChave:
    """
    Grava privateKey.pem, publicKey.pem e all_cert.pem no diretório.
    Arquivos já existentes não são sobrescritos.
    """
    arquivos = caminhos_chaves(diretorio)
    base = Path(diretorio)

    try:
        base.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ArquivoChaveError(f"Falha ao criar o diretório {base}") from exc

    conteudos = (
        (arquivos.private_key, certificado.pem_key),
        (arquivos.public_key, certificado.pem_cert),
        (arquivos.all_cert, certificado.pem_cert + certificado.pem_key),
    )
    for caminho, conteudo in conteudos:
        if caminho.exists():
            continue
        try:
            caminho.write_bytes(conteudo)
        except OSError as exc:
            raise ArquivoChaveError(f"Falha ao criar o arquivo {caminho}") from exc
        logger.debug("Arquivo de chave gravado: %s", caminho)

    return arquivos


def ler_chaves(diretorio: str | Path) -> Tuple[bytes, bytes]:
    """
    Lê (pem_key, pem_cert) já extraídos anteriormente por gravar_chaves().
    """
    arquivos = caminhos_chaves(diretorio)
    try:
        return arquivos.private_key.read_bytes(), arquivos.public_key.read_bytes()
    except OSError as exc:
        raise CertificadoError(
            f"Chaves PEM não encontradas em {diretorio}; carregue o certificado antes"
        ) from exc
