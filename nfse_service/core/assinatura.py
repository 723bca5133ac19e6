# nfse_service/core/assinatura.py
from __future__ import annotations

from pathlib import Path

from lxml import etree
import xmlsec

from .exceptions import AssinaturaError
from .xml_utils import limpar_xml

DSIG_NS = "http://www.w3.org/2000/09/xmldsig#"

TAG_RPS = "InfDeclaracaoPrestacaoServico"
TAG_LOTE = "LoteRps"


def _limpar_whitespace_subarvore(elem: etree._Element) -> None:
    """
    Remove nós de texto/tail que sejam APENAS whitespace na subárvore.
    """
    for node in elem.iter():
        if node.text is not None and node.text.strip() == "":
            node.text = ""
        if node.tail is not None and node.tail.strip() == "":
            node.tail = ""


def _remover_assinaturas(root: etree._Element) -> None:
    for sig in root.xpath("//ds:Signature", namespaces={"ds": DSIG_NS}):
        parent = sig.getparent()
        if parent is not None:
            parent.remove(sig)


def _compactar_assinatura(signature_el: etree._Element) -> None:
    """
    SignatureValue e X509Certificate em uma linha só, sem espaços.
    """
    for tag in ("SignatureValue", "X509Certificate"):
        for el in signature_el.iter(f"{{{DSIG_NS}}}{tag}"):
            if el.text:
                el.text = "".join("".join(el.itertext()).split())

    # SignedInfo fica intacto; só o KeyInfo pode perder whitespace
    for key_info in signature_el.iter(f"{{{DSIG_NS}}}KeyInfo"):
        _limpar_whitespace_subarvore(key_info)


def _criar_template(root: etree._Element, node_id: str) -> etree._Element:
    """
    Template <Signature> com:
      - CanonicalizationMethod: exc-c14n
      - SignatureMethod: rsa-sha1
      - Reference URI="#Id" com DigestMethod sha1
      - Transforms: enveloped-signature + c14n
      - KeyInfo/X509Data
    """
    signature_node = xmlsec.template.create(
        root,
        xmlsec.Transform.EXCL_C14N,
        xmlsec.Transform.RSA_SHA1,
    )
    ref = xmlsec.template.add_reference(
        signature_node,
        xmlsec.Transform.SHA1,
        uri=f"#{node_id}",
    )
    xmlsec.template.add_transform(ref, xmlsec.Transform.ENVELOPED)
    xmlsec.template.add_transform(ref, xmlsec.Transform.C14N)

    key_info = xmlsec.template.ensure_key_info(signature_node)
    xmlsec.template.add_x509_data(key_info)

    _limpar_whitespace_subarvore(signature_node)
    return signature_node


def _assinar_no(
    root: etree._Element,
    node: etree._Element,
    key: xmlsec.Key,
    nome: str,
) -> etree._Element:
    """
    Assina `node` (pelo atributo Id) e anexa a <Signature> ao elemento pai.
    """
    node_id = node.get("Id")
    if not node_id:
        raise AssinaturaError(f"<{nome}> sem atributo Id")

    parent = node.getparent()
    if parent is None:
        raise AssinaturaError(f"<{nome}> não possui elemento pai para receber a assinatura")

    signature_node = _criar_template(root, node_id)
    parent.append(signature_node)

    ctx = xmlsec.SignatureContext()
    ctx.key = key
    try:
        ctx.sign(signature_node)
    except xmlsec.Error as exc:
        raise AssinaturaError(f"Falha ao assinar <{nome}> Id={node_id}: {exc}") from exc

    _compactar_assinatura(signature_node)
    return signature_node


def _carregar_chave(pem_key: bytes, pem_cert: bytes) -> xmlsec.Key:
    try:
        key = xmlsec.Key.from_memory(pem_key, xmlsec.KeyFormat.PEM, None)
        key.load_cert_from_memory(pem_cert, xmlsec.KeyFormat.PEM)
    except xmlsec.Error as exc:
        raise AssinaturaError(f"Chave/certificado PEM inválidos: {exc}") from exc
    return key


def assinar_lote_rps(xml: str, pem_key: bytes, pem_cert: bytes) -> str:
    """
    Assina um <EnviarLoteRpsEnvio> no padrão ABRASF:

      1. cada <InfDeclaracaoPrestacaoServico>, com a assinatura dentro do <Rps>;
      2. o <LoteRps> inteiro, com a assinatura dentro do elemento raiz.

    Retorna o XML assinado com declaração, sem pretty_print.
    """
    # 0) Remover BOM (conteúdo dos nós fica como está)
    xml = limpar_xml(xml)

    # 1) Parse
    parser = etree.XMLParser(remove_blank_text=True)
    try:
        root = etree.fromstring(xml.encode("utf-8"), parser=parser)
    except etree.XMLSyntaxError as exc:
        raise AssinaturaError(f"XML do lote inválido: {exc}") from exc

    _remover_assinaturas(root)

    lotes = root.xpath(f"//*[local-name()='{TAG_LOTE}']")
    if not lotes:
        raise AssinaturaError(f"Não encontrado <{TAG_LOTE}>")
    lote = lotes[0]
    if not lote.get("Id"):
        raise AssinaturaError(f"<{TAG_LOTE}> sem atributo Id")

    # 2) Registrar atributo Id para as referências "#..."
    xmlsec.tree.add_ids(root, ["Id"])

    key = _carregar_chave(pem_key, pem_cert)

    # 3) Assinatura dos RPS individuais
    for inf in root.xpath(f"//*[local-name()='{TAG_RPS}']"):
        _assinar_no(root, inf, key, TAG_RPS)

    # 4) Assinatura do lote inteiro
    _assinar_no(root, lote, key, TAG_LOTE)

    # 5) Serializar
    xml_bytes = etree.tostring(
        root,
        encoding="UTF-8",
        xml_declaration=True,
        pretty_print=False,
    )
    return xml_bytes.decode("utf-8")


def assinar_lote_rps_arquivo(caminho: str | Path, pem_key: bytes, pem_cert: bytes) -> str:
    try:
        xml = Path(caminho).read_text(encoding="utf-8")
    except OSError as exc:
        raise AssinaturaError(f"Não foi possível ler o XML do lote: {caminho}") from exc
    return assinar_lote_rps(xml, pem_key, pem_cert)
