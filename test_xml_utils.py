from conftest import ENVIAR_LOTE_RESPOSTA, SOAP_FAULT
from nfse_service.core.xml_utils import (
    extrair_fault,
    limpar_xml,
    only_digits,
    xml_para_dict,
)


def test_only_digits():
    assert only_digits("12.345.678/0001-95") == "12345678000195"
    assert only_digits(None) == ""


def test_limpar_xml_preserva_conteudo():
    assert limpar_xml("\ufeff<a>\n\t<b>1\n2</b>\n</a>\n") == "<a>\n\t<b>1\n2</b>\n</a>"
    assert limpar_xml("<a\n\tId=\"x\"/>") == "<a\n\tId=\"x\"/>"
    assert limpar_xml("") == ""


def test_xml_para_dict_resposta_envio():
    assert xml_para_dict(ENVIAR_LOTE_RESPOSTA) == {
        "NumeroLote": "1",
        "DataRecebimento": "2024-01-10T10:15:00",
        "Protocolo": "ABC123456",
    }


def test_xml_para_dict_listas_atributos_e_vazios():
    xml = (
        '<Resposta xmlns="http://www.abrasf.org.br/nfse.xsd" versao="2.02">'
        "<Lista><Item>a</Item><Item>b</Item><Item>c</Item></Lista>"
        '<Valor moeda="BRL">10.00</Valor>'
        "<Vazio/>"
        "</Resposta>"
    )
    assert xml_para_dict(xml) == {
        "@attributes": {"versao": "2.02"},
        "Lista": {"Item": ["a", "b", "c"]},
        "Valor": {"@attributes": {"moeda": "BRL"}, "#text": "10.00"},
        "Vazio": {},
    }


def test_extrair_fault():
    assert extrair_fault(SOAP_FAULT) == "Server was unable to process request."
    assert extrair_fault("<ok/>") is None
    assert extrair_fault("não é xml") is None
