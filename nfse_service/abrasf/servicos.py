# nfse_service/abrasf/servicos.py
from __future__ import annotations

import logging
from xml.sax.saxutils import escape

import requests
from lxml import etree

from ..core.config import ABRASF_NS
from ..core.exceptions import NFSeSoapError
from ..core.soap_client import SoapClient
from ..core.xml_utils import extrair_fault, only_digits

logger = logging.getLogger(__name__)

# Namespace das operações do WSDL ABRASF 2.02
WSDL_NS = "http://nfse.abrasf.org.br"
SOAP11_NS = "http://schemas.xmlsoap.org/soap/envelope/"

OP_RECEPCIONAR_LOTE_RPS = "RecepcionarLoteRps"
OP_CONSULTAR_LOTE_RPS = "ConsultarLoteRps"


def endpoint_operacao(url_servico: str, operacao: str) -> str:
    """<url>?op=<Operacao> (Location usado pelo .asmx)."""
    return f"{url_servico}?op={operacao}"


def soap_action(operacao: str) -> str:
    return f"{WSDL_NS}/{operacao}"


def montar_envelope(operacao: str, cabecalho: str, dados: str) -> str:
    """
    Monta o envelope SOAP 1.1:

    <soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
      <soap:Body>
        <RecepcionarLoteRpsRequest xmlns="http://nfse.abrasf.org.br">
          <nfseCabecMsg>...</nfseCabecMsg>
          <nfseDadosMsg>...</nfseDadosMsg>
        </RecepcionarLoteRpsRequest>
      </soap:Body>
    </soap:Envelope>

    Cabeçalho e dados são parâmetros string: vão escapados, não como nós.
    """
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
        f'xmlns:xsd="http://www.w3.org/2001/XMLSchema" xmlns:soap="{SOAP11_NS}">'
        "<soap:Body>"
        f'<{operacao}Request xmlns="{WSDL_NS}">'
        f"<nfseCabecMsg>{escape(cabecalho)}</nfseCabecMsg>"
        f"<nfseDadosMsg>{escape(dados)}</nfseDadosMsg>"
        f"</{operacao}Request>"
        "</soap:Body>"
        "</soap:Envelope>"
    )


def extrair_output_xml(resposta: str, operacao: str) -> str:
    """
    Extrai o texto de <outputXML> do <OperacaoResponse>.
    """
    fault = extrair_fault(resposta)
    if fault is not None:
        raise NFSeSoapError(operacao, fault)

    try:
        root = etree.fromstring(resposta.encode("utf-8"))
    except etree.XMLSyntaxError as exc:
        raise NFSeSoapError(operacao, f"resposta não é XML: {exc}", exc) from exc

    nodes = root.xpath("//*[local-name()='outputXML']")
    if not nodes:
        raise NFSeSoapError(operacao, "resposta sem <outputXML>")

    node = nodes[0]
    # alguns provedores devolvem o XML como nós em vez de texto escapado
    if len(node):
        return etree.tostring(node[0], encoding="unicode")

    output_xml = (node.text or "").strip()
    if not output_xml:
        raise NFSeSoapError(operacao, "outputXML vazio")
    return output_xml


def chamar_operacao(
    soap_client: SoapClient,
    url_servico: str,
    operacao: str,
    cabecalho: str,
    dados: str,
) -> str:
    """
    Chama uma operação do webservice e devolve o outputXML.
    """
    envelope = montar_envelope(operacao, cabecalho, dados)
    logger.info("Chamando %s em %s", operacao, url_servico)
    try:
        resposta = soap_client.post_xml(
            endpoint_operacao(url_servico, operacao),
            envelope,
            soap_action(operacao),
        )
    except requests.RequestException as exc:
        raise NFSeSoapError(operacao, str(exc), exc) from exc

    return extrair_output_xml(resposta, operacao)


def montar_consultar_lote_rps(cnpj: str, inscricao_municipal: str, protocolo: str) -> str:
    """
    <ConsultarLoteRpsEnvio xmlns="http://www.abrasf.org.br/nfse.xsd">
      <Prestador>
        <CpfCnpj><Cnpj>...</Cnpj></CpfCnpj>
        <InscricaoMunicipal>...</InscricaoMunicipal>
      </Prestador>
      <Protocolo>...</Protocolo>
    </ConsultarLoteRpsEnvio>
    """
    documento = only_digits(cnpj)
    tag_doc = "Cpf" if len(documento) == 11 else "Cnpj"

    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        f'<ConsultarLoteRpsEnvio xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
        f'xmlns:xsd="http://www.w3.org/2001/XMLSchema" xmlns="{ABRASF_NS}">'
        "<Prestador>"
        f"<CpfCnpj><{tag_doc}>{documento}</{tag_doc}></CpfCnpj>"
        f"<InscricaoMunicipal>{escape(inscricao_municipal.strip())}</InscricaoMunicipal>"
        "</Prestador>"
        f"<Protocolo>{escape(str(protocolo).strip())}</Protocolo>"
        "</ConsultarLoteRpsEnvio>"
    )
