# nfse_api/main.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from nfse_service.abrasf import NFSeRetorno, NFSeWebService
from nfse_service.core.config import NFSeConfig
from nfse_service.core.exceptions import (
    AssinaturaError,
    CertificadoError,
    InscricaoMunicipalError,
    NFSeError,
    NFSeSoapError,
    XmlNaoDefinidoError,
)

app = FastAPI(
    title="NFSe ABRASF Service",
    version="0.1.0",
    description="Assinatura e envio de lotes de RPS para webservices NFSe ABRASF 2.02",
)


# --------------------------- MODELOS DE REQUEST --------------------------- #

class CertificadoRequest(BaseModel):
    cnpj: str = Field(..., description="CNPJ do prestador (nome do arquivo <cnpj>.pfx)")
    senha: str = Field(..., description="Senha do certificado PFX")
    diretorio: str = Field(..., description="Diretório do .pfx no servidor")
    producao: bool = Field(False, description="True=Produção, False=Homologação")
    url_servico: Optional[str] = Field(None, description="URL de outro provedor ABRASF")


class LoteRpsRequest(CertificadoRequest):
    xml: str = Field(..., description="XML EnviarLoteRpsEnvio sem assinatura")


class ConsultaLoteRequest(CertificadoRequest):
    protocolo: str = Field(..., description="Protocolo devolvido pelo RecepcionarLoteRps")
    inscricao_municipal: str = Field(..., description="Inscrição municipal do prestador")


# --------------------------- MODELOS DE RESPONSE -------------------------- #

class AssinaturaResponse(BaseModel):
    xml_assinado: str


class NFSeResponse(BaseModel):
    sucesso: bool
    protocolo: Optional[str] = None
    numero_lote: Optional[str] = None
    data_recebimento: Optional[str] = None
    situacao: Optional[str] = None
    mensagens: List[Dict[str, Optional[str]]] = []
    dados: Dict[str, Any]
    xml_envio: str
    xml_retorno: str


class CertificadoResponse(BaseModel):
    cnpj: str
    validade: str
    dias_para_expirar: Optional[int]
    url_servico: str


# ------------------------------- HELPERS ---------------------------------- #

def _webservice(payload: CertificadoRequest) -> NFSeWebService:
    try:
        return NFSeWebService(
            cnpj=payload.cnpj,
            senha=payload.senha,
            diretorio_certificados=payload.diretorio,
            producao=payload.producao,
            url_servico=payload.url_servico,
        )
    except CertificadoError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _http_error(e: NFSeError) -> HTTPException:
    if isinstance(e, CertificadoError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (XmlNaoDefinidoError, InscricaoMunicipalError, AssinaturaError)):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, NFSeSoapError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _response(res: NFSeRetorno) -> NFSeResponse:
    return NFSeResponse(
        sucesso=res.sucesso,
        protocolo=res.protocolo,
        numero_lote=res.numero_lote,
        data_recebimento=res.data_recebimento,
        situacao=res.situacao,
        mensagens=res.mensagens,
        dados=res.dados,
        xml_envio=res.xml_envio,
        xml_retorno=res.xml_retorno,
    )


# -------------------------------- ROTAS ----------------------------------- #

@app.post(
    "/nfse/lote-rps/assinar",
    response_model=AssinaturaResponse,
    summary="Assinar lote de RPS (RPS individuais + LoteRps)",
)
def assinar_lote_rps(payload: LoteRpsRequest):
    ws = _webservice(payload)
    ws.definir_xml_conteudo(payload.xml)
    try:
        xml_assinado = ws.xml_assinado()
    except NFSeError as e:
        raise _http_error(e)
    return AssinaturaResponse(xml_assinado=xml_assinado)


@app.post(
    "/nfse/lote-rps/enviar",
    response_model=NFSeResponse,
    summary="Assinar e enviar lote de RPS (RecepcionarLoteRps)",
)
def enviar_lote_rps(payload: LoteRpsRequest):
    ws = _webservice(payload)
    ws.definir_xml_conteudo(payload.xml)
    try:
        res = ws.enviar_lote_rps()
    except NFSeError as e:
        raise _http_error(e)
    return _response(res)


@app.post(
    "/nfse/lote-rps/consultar",
    response_model=NFSeResponse,
    summary="Consultar lote de RPS pelo protocolo (ConsultarLoteRps)",
)
def consultar_lote_rps(payload: ConsultaLoteRequest):
    ws = _webservice(payload)
    ws.definir_inscricao_municipal(payload.inscricao_municipal)
    try:
        res = ws.consultar_lote_rps(payload.protocolo)
    except NFSeError as e:
        raise _http_error(e)
    return _response(res)


@app.get(
    "/nfse/certificado",
    response_model=CertificadoResponse,
    summary="Validade do certificado configurado no ambiente (NFSE_*)",
)
def certificado_configurado():
    try:
        config = NFSeConfig.from_env()
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))

    try:
        ws = NFSeWebService.from_config(config)
    except NFSeError as e:
        raise _http_error(e)

    return CertificadoResponse(
        cnpj=config.cnpj,
        validade=ws.certificado.validade.isoformat(),
        dias_para_expirar=ws.dias_para_expirar,
        url_servico=ws.url_servico,
    )
