# nfse_service/core/xml_utils.py
from __future__ import annotations

import re
from typing import Any, Dict, Optional

from lxml import etree


def only_digits(value: str | None) -> str:
    """
    Remove tudo que não for número.
    """
    if not value:
        return ""
    return re.sub(r"\D+", "", value)


def limpar_xml(xml: str) -> str:
    """
    Remove BOM e espaços nas pontas. O conteúdo dos nós não é alterado:
    a indentação sai no parse (remove_blank_text).
    """
    if not xml:
        return ""
    return xml.lstrip("\ufeff").strip()


def local_name(el: etree._Element) -> str:
    return etree.QName(el).localname


def local_name_attr(nome: str) -> str:
    if nome.startswith("{"):
        return nome.split("}", 1)[1]
    return nome


def _elemento_para_valor(el: etree._Element) -> Any:
    filhos = [c for c in el if isinstance(c.tag, str)]
    atributos = {local_name_attr(k): v for k, v in el.attrib.items()}
    texto = (el.text or "").strip()

    if not filhos:
        if not atributos:
            return texto if texto else {}
        valor: Dict[str, Any] = {"@attributes": atributos}
        if texto:
            valor["#text"] = texto
        return valor

    resultado: Dict[str, Any] = {}
    if atributos:
        resultado["@attributes"] = atributos

    for filho in filhos:
        nome = local_name(filho)
        item = _elemento_para_valor(filho)
        if nome in resultado:
            atual = resultado[nome]
            if isinstance(atual, list):
                atual.append(item)
            else:
                resultado[nome] = [atual, item]
        else:
            resultado[nome] = item
    return resultado


def xml_para_dict(xml: str | bytes) -> Dict[str, Any]:
    """
    Converte um XML em dicionário genérico (raiz não entra como chave).

    - filhos pelo nome local (sem namespace)
    - irmãos repetidos viram lista
    - folha com texto vira string; elemento vazio vira {}
    - atributos em "@attributes"; texto junto com atributos em "#text"

    <ConsultarLoteRpsResposta><Situacao>4</Situacao></ConsultarLoteRpsResposta>
      -> {"Situacao": "4"}
    """
    if isinstance(xml, str):
        xml = xml.strip().encode("utf-8")

    parser = etree.XMLParser(remove_blank_text=True, resolve_entities=False)
    root = etree.fromstring(xml, parser=parser)

    valor = _elemento_para_valor(root)
    if isinstance(valor, dict):
        return valor
    # raiz só com texto
    return {"#text": valor}


def extrair_fault(xml: str) -> Optional[str]:
    """
    Devolve o faultstring de um SOAP Fault, ou None se não for Fault.
    """
    try:
        root = etree.fromstring(xml.encode("utf-8"))
    except etree.XMLSyntaxError:
        return None

    faults = root.xpath("//*[local-name()='Fault']")
    if not faults:
        return None

    textos = faults[0].xpath(
        ".//*[local-name()='faultstring' or local-name()='Text']/text()"
    )
    if textos:
        return textos[0].strip()
    return "SOAP Fault sem descrição"
