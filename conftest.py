from datetime import datetime, timedelta, timezone
from xml.sax.saxutils import escape

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import BestAvailableEncryption, pkcs12
from cryptography.x509.oid import NameOID

CNPJ = "12345678000195"
SENHA = "12345678"

LOTE_RPS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<EnviarLoteRpsEnvio xmlns="http://www.abrasf.org.br/nfse.xsd">
  <LoteRps Id="lote1" versao="2.02">
    <NumeroLote>1</NumeroLote>
    <CpfCnpj><Cnpj>12345678000195</Cnpj></CpfCnpj>
    <InscricaoMunicipal>123456</InscricaoMunicipal>
    <QuantidadeRps>2</QuantidadeRps>
    <ListaRps>
      <Rps>
        <InfDeclaracaoPrestacaoServico Id="rps1">
          <Rps>
            <IdentificacaoRps><Numero>1</Numero><Serie>A</Serie><Tipo>1</Tipo></IdentificacaoRps>
            <DataEmissao>2024-01-10</DataEmissao>
            <Status>1</Status>
          </Rps>
          <Competencia>2024-01-10</Competencia>
          <Servico>
            <Valores><ValorServicos>100.00</ValorServicos></Valores>
            <IssRetido>2</IssRetido>
            <ItemListaServico>1.07</ItemListaServico>
            <Discriminacao>Suporte tecnico</Discriminacao>
            <CodigoMunicipio>2930709</CodigoMunicipio>
            <ExigibilidadeISS>1</ExigibilidadeISS>
          </Servico>
          <Prestador>
            <CpfCnpj><Cnpj>12345678000195</Cnpj></CpfCnpj>
            <InscricaoMunicipal>123456</InscricaoMunicipal>
          </Prestador>
        </InfDeclaracaoPrestacaoServico>
      </Rps>
      <Rps>
        <InfDeclaracaoPrestacaoServico Id="rps2">
          <Rps>
            <IdentificacaoRps><Numero>2</Numero><Serie>A</Serie><Tipo>1</Tipo></IdentificacaoRps>
            <DataEmissao>2024-01-10</DataEmissao>
            <Status>1</Status>
          </Rps>
          <Competencia>2024-01-10</Competencia>
          <Servico>
            <Valores><ValorServicos>250.00</ValorServicos></Valores>
            <IssRetido>2</IssRetido>
            <ItemListaServico>1.07</ItemListaServico>
            <Discriminacao>Manutencao</Discriminacao>
            <CodigoMunicipio>2930709</CodigoMunicipio>
            <ExigibilidadeISS>1</ExigibilidadeISS>
          </Servico>
          <Prestador>
            <CpfCnpj><Cnpj>12345678000195</Cnpj></CpfCnpj>
            <InscricaoMunicipal>123456</InscricaoMunicipal>
          </Prestador>
        </InfDeclaracaoPrestacaoServico>
      </Rps>
    </ListaRps>
  </LoteRps>
</EnviarLoteRpsEnvio>
"""

ENVIAR_LOTE_RESPOSTA = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<EnviarLoteRpsResposta xmlns="http://www.abrasf.org.br/nfse.xsd">'
    "<NumeroLote>1</NumeroLote>"
    "<DataRecebimento>2024-01-10T10:15:00</DataRecebimento>"
    "<Protocolo>ABC123456</Protocolo>"
    "</EnviarLoteRpsResposta>"
)

ENVIAR_LOTE_RESPOSTA_ERRO = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<EnviarLoteRpsResposta xmlns="http://www.abrasf.org.br/nfse.xsd">'
    "<ListaMensagemRetorno>"
    "<MensagemRetorno><Codigo>E160</Codigo>"
    "<Mensagem>Arquivo em desacordo com o XML Schema.</Mensagem>"
    "<Correcao>Verifique o XML.</Correcao></MensagemRetorno>"
    "<MensagemRetorno><Codigo>E10</Codigo>"
    "<Mensagem>RPS ja informado.</Mensagem></MensagemRetorno>"
    "</ListaMensagemRetorno>"
    "</EnviarLoteRpsResposta>"
)


def gerar_pfx(senha=SENHA, dias_validade=365, not_after=None):
    """Certificado auto-assinado em PKCS#12. Devolve (pfx_bytes, cert)."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    nome = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "BR"),
        x509.NameAttribute(NameOID.COMMON_NAME, f"EMPRESA TESTE LTDA:{CNPJ}"),
    ])
    agora = datetime.now(timezone.utc)
    if not_after is None:
        not_after = agora + timedelta(days=dias_validade)
    not_before = min(agora, not_after) - timedelta(days=30)

    cert = (
        x509.CertificateBuilder()
        .subject_name(nome)
        .issuer_name(nome)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )
    pfx = pkcs12.serialize_key_and_certificates(
        b"teste",
        key,
        cert,
        None,
        BestAvailableEncryption(senha.encode("utf-8")),
    )
    return pfx, cert


def soap_resposta(operacao, output_xml):
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
        "<soap:Body>"
        f'<{operacao}Response xmlns="http://nfse.abrasf.org.br">'
        f"<outputXML>{escape(output_xml)}</outputXML>"
        f"</{operacao}Response>"
        "</soap:Body>"
        "</soap:Envelope>"
    )


SOAP_FAULT = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
    "<soap:Body><soap:Fault>"
    "<faultcode>soap:Server</faultcode>"
    "<faultstring>Server was unable to process request.</faultstring>"
    "</soap:Fault></soap:Body></soap:Envelope>"
)


class FakeSoapClient:
    """Substitui o SoapClient: grava as chamadas e devolve respostas prontas."""

    def __init__(self, respostas):
        self.respostas = list(respostas)
        self.chamadas = []
        self.ultima_requisicao = None
        self.ultima_resposta = None
        self.ultimos_headers_enviados = {}
        self.ultimos_headers_recebidos = {}

    def post_xml(self, url, xml, soap_action=None):
        self.chamadas.append((url, xml, soap_action))
        self.ultima_requisicao = xml
        resposta = self.respostas.pop(0)
        if isinstance(resposta, Exception):
            raise resposta
        self.ultima_resposta = resposta
        return resposta


@pytest.fixture
def pfx_dir(tmp_path):
    """Diretório com <cnpj>.pfx válido."""
    pfx, _cert = gerar_pfx()
    (tmp_path / f"{CNPJ}.pfx").write_bytes(pfx)
    return tmp_path


@pytest.fixture
def lote_xml_path(tmp_path):
    caminho = tmp_path / "lote_rps.xml"
    caminho.write_text(LOTE_RPS_XML, encoding="utf-8")
    return caminho
