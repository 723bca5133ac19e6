# nfse_service/abrasf/webservice.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..core.assinatura import assinar_lote_rps, assinar_lote_rps_arquivo
from ..core.certificado import (
    CertificadoA1,
    caminhos_chaves,
    carregar_pfx,
    chave_publica_pem,
    gravar_chaves,
    ler_chaves,
    validar_validade,
)
from ..core.config import DEFAULT_HEADER, NFSeConfig, ambiente_de, resolver_url_servico
from ..core.exceptions import InscricaoMunicipalError, XmlNaoDefinidoError
from ..core.soap_client import SoapClient
from .retorno import NFSeRetorno, processar_retorno
from .servicos import (
    OP_CONSULTAR_LOTE_RPS,
    OP_RECEPCIONAR_LOTE_RPS,
    chamar_operacao,
    montar_consultar_lote_rps,
)

logger = logging.getLogger(__name__)


class NFSeWebService:
    """
    Comunicação com o webservice NFSe ABRASF 2.02 (WebISS por padrão).

    O PFX deve estar em <diretorio_certificados>/<cnpj>.pfx. Ao carregar o
    certificado, as chaves privateKey.pem, publicKey.pem e all_cert.pem são
    extraídas para o mesmo diretório (apenas se ainda não existirem).

    Para outro provedor ABRASF informe url_servico e, se preciso, cabecalho.
    """

    def __init__(
        self,
        cnpj: str,
        senha: str,
        diretorio_certificados: str,
        producao: bool = False,
        carregar_certificado: bool = True,
        cabecalho: str = DEFAULT_HEADER,
        url_servico: Optional[str] = None,
        timeout: int = 30,
        verificar_ssl: bool = True,
        debug: bool = False,
    ):
        self.ambiente = ambiente_de(producao)
        self._url_servico = resolver_url_servico(self.ambiente, url_servico)

        self.cnpj = cnpj
        self.senha = senha
        self.cabecalho = cabecalho
        self.diretorio_certificados = Path(diretorio_certificados)
        self.debug = debug

        self.inscricao_municipal: Optional[str] = None
        self.src_xml: Optional[Path] = None
        self.xml_lote: Optional[str] = None

        self.pfx_path = self.diretorio_certificados / f"{cnpj}.pfx"
        self.arquivos = caminhos_chaves(self.diretorio_certificados)

        self.certificado: Optional[CertificadoA1] = None
        self.x509_certificado: Optional[str] = None
        self.dias_para_expirar: Optional[int] = None

        if carregar_certificado:
            self._carregar_certificado()
            # TLS direto do PFX
            self.soap_client = SoapClient(
                pfx_path=str(self.pfx_path),
                pfx_password=senha,
                timeout=timeout,
                verify=verificar_ssl,
            )
        else:
            # chaves já extraídas anteriormente
            self.soap_client = SoapClient(
                cert_path=str(self.arquivos.all_cert),
                timeout=timeout,
                verify=verificar_ssl,
            )

    @classmethod
    def from_config(cls, config: NFSeConfig, carregar_certificado: bool = True) -> "NFSeWebService":
        ws = cls(
            cnpj=config.cnpj,
            senha=config.senha,
            diretorio_certificados=config.diretorio_certificados,
            producao=config.producao,
            carregar_certificado=carregar_certificado,
            cabecalho=config.cabecalho,
            url_servico=config.url_servico,
            timeout=config.timeout,
            verificar_ssl=config.verificar_ssl,
            debug=config.debug,
        )
        if config.inscricao_municipal:
            ws.definir_inscricao_municipal(config.inscricao_municipal)
        return ws

    # ------------------------------------------------------------------
    # Configuração
    # ------------------------------------------------------------------

    @property
    def url_servico(self) -> str:
        return self._url_servico

    def definir_inscricao_municipal(self, inscricao: str) -> None:
        self.inscricao_municipal = inscricao

    def definir_xml(self, src_xml: str | Path) -> None:
        """Caminho do arquivo XML do lote (EnviarLoteRpsEnvio) a ser enviado."""
        self.src_xml = Path(src_xml)
        self.xml_lote = None

    def definir_xml_conteudo(self, xml: str) -> None:
        """XML do lote já em memória (alternativa a definir_xml)."""
        self.xml_lote = xml
        self.src_xml = None

    # ------------------------------------------------------------------
    # Certificado
    # ------------------------------------------------------------------

    def _carregar_certificado(self) -> None:
        """
        Lê o PFX, valida a data e grava as chaves PEM no diretório.
        """
        certificado = carregar_pfx(self.pfx_path, self.senha)
        self.x509_certificado = certificado.x509_base64

        self.validar_certificado(certificado.pem_cert)
        certificado.dias_para_expirar = self.dias_para_expirar

        gravar_chaves(certificado, self.diretorio_certificados)
        self.certificado = certificado
        logger.info(
            "Certificado %s carregado (válido até %s)",
            self.pfx_path.name,
            certificado.validade.isoformat(),
        )

    def validar_certificado(self, pem_cert: bytes) -> bool:
        self.dias_para_expirar = validar_validade(pem_cert)
        return True

    def _chaves(self) -> tuple[bytes, bytes]:
        if self.certificado is not None:
            return self.certificado.pem_key, self.certificado.pem_cert
        return ler_chaves(self.diretorio_certificados)

    def chave_publica(self) -> str:
        """Chave pública do certificado (PEM)."""
        if self.certificado is not None:
            return self.certificado.chave_publica()

        _key, pem_cert = ler_chaves(self.diretorio_certificados)
        return chave_publica_pem(pem_cert)

    # ------------------------------------------------------------------
    # Operações
    # ------------------------------------------------------------------

    def xml_assinado(self) -> str:
        """
        Assina o lote definido em definir_xml() sem enviar.
        """
        if self.src_xml is None and self.xml_lote is None:
            raise XmlNaoDefinidoError("Defina o xml a ser assinado!")

        pem_key, pem_cert = self._chaves()
        if self.xml_lote is not None:
            return assinar_lote_rps(self.xml_lote, pem_key, pem_cert)
        return assinar_lote_rps_arquivo(self.src_xml, pem_key, pem_cert)

    def enviar_lote_rps(self) -> NFSeRetorno:
        """
        Assina e envia o lote (RecepcionarLoteRps).
        Retorna protocolo/data de recebimento ou a lista de mensagens.
        """
        if self.src_xml is None and self.xml_lote is None:
            raise XmlNaoDefinidoError("Defina o xml a ser enviado no lote de RPS")

        xml_assinado = self.xml_assinado()

        try:
            output_xml = chamar_operacao(
                self.soap_client,
                self.url_servico,
                OP_RECEPCIONAR_LOTE_RPS,
                self.cabecalho,
                xml_assinado,
            )
        finally:
            self._log_debug()

        return processar_retorno(output_xml, xml_assinado, OP_RECEPCIONAR_LOTE_RPS)

    def consultar_lote_rps(self, protocolo: str) -> NFSeRetorno:
        """
        Consulta a situação do lote pelo protocolo (ConsultarLoteRps).
        """
        if not self.inscricao_municipal:
            raise InscricaoMunicipalError(
                f"Informe a inscricao municipal do CNPJ: {self.cnpj}, "
                "use o metodo definir_inscricao_municipal"
            )

        xml = montar_consultar_lote_rps(self.cnpj, self.inscricao_municipal, protocolo)

        try:
            output_xml = chamar_operacao(
                self.soap_client,
                self.url_servico,
                OP_CONSULTAR_LOTE_RPS,
                self.cabecalho,
                xml,
            )
        finally:
            self._log_debug()

        return processar_retorno(output_xml, xml, OP_CONSULTAR_LOTE_RPS)

    def _log_debug(self) -> None:
        if not self.debug:
            return

        client = self.soap_client
        logger.info("ULTIMO CABECALHO ENVIADO: %s", client.ultimos_headers_enviados)
        logger.info("ULTIMO CABECALHO RECEBIDO: %s", client.ultimos_headers_recebidos)
        logger.info("ULTIMO PACOTE ENVIADO: %s", client.ultima_requisicao)
        logger.info("ULTIMO PACOTE RECEBIDO: %s", client.ultima_resposta)
