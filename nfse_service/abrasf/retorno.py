# nfse_service/abrasf/retorno.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from lxml import etree

from ..core.exceptions import NFSeSoapError
from ..core.xml_utils import xml_para_dict


@dataclass
class NFSeRetorno:
    """
    Resultado de uma operação do webservice NFSe.

      - dados: outputXML convertido em dicionário (ver xml_para_dict)
      - protocolo / numero_lote / data_recebimento: RecepcionarLoteRps
      - situacao: ConsultarLoteRps (1 não recebido ... 4 processado com sucesso)
      - mensagens: ListaMensagemRetorno / ListaMensagemRetornoLote
    """
    dados: Dict[str, Any]
    xml_envio: str
    xml_retorno: str

    protocolo: Optional[str] = None
    numero_lote: Optional[str] = None
    data_recebimento: Optional[str] = None
    situacao: Optional[str] = None
    mensagens: List[Dict[str, Optional[str]]] = field(default_factory=list)

    @property
    def sucesso(self) -> bool:
        return not self.mensagens


def _primeiro_texto(root: etree._Element, tag: str) -> Optional[str]:
    nodes = root.xpath(f"//*[local-name()='{tag}']")
    if nodes and nodes[0].text and nodes[0].text.strip():
        return nodes[0].text.strip()
    return None


def _mensagens(root: etree._Element) -> List[Dict[str, Optional[str]]]:
    mensagens = []
    for msg in root.xpath(
        "//*[starts-with(local-name(), 'ListaMensagemRetorno')]"
        "/*[local-name()='MensagemRetorno']"
    ):
        item = {}
        for campo in ("Codigo", "Mensagem", "Correcao"):
            nodes = msg.xpath(f"./*[local-name()='{campo}']")
            item[campo] = nodes[0].text.strip() if nodes and nodes[0].text else None
        mensagens.append(item)
    return mensagens


def processar_retorno(output_xml: str, xml_envio: str, operacao: str) -> NFSeRetorno:
    """
    Normaliza o outputXML em NFSeRetorno.
    outputXML que não é XML vira NFSeSoapError da operação.
    """
    try:
        dados = xml_para_dict(output_xml)
        root = etree.fromstring(output_xml.strip().encode("utf-8"))
    except etree.XMLSyntaxError as exc:
        raise NFSeSoapError(operacao, f"outputXML inválido: {exc}", exc) from exc

    return NFSeRetorno(
        dados=dados,
        xml_envio=xml_envio,
        xml_retorno=output_xml,
        protocolo=_primeiro_texto(root, "Protocolo"),
        numero_lote=_primeiro_texto(root, "NumeroLote"),
        data_recebimento=_primeiro_texto(root, "DataRecebimento"),
        situacao=_primeiro_texto(root, "Situacao"),
        mensagens=_mensagens(root),
    )
