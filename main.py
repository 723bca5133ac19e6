import logging
import sys
from pathlib import Path

from nfse_service.abrasf import NFSeWebService
from nfse_service.core.config import NFSeConfig
from nfse_service.core.exceptions import NFSeError


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # 1. Configuração vem do .env (NFSE_CNPJ, NFSE_PFX_SENHA, NFSE_CERT_DIR...)
    config = NFSeConfig.from_env()

    xml_path = Path(sys.argv[1] if len(sys.argv) > 1 else "exemplos/lote_rps.xml")
    if not xml_path.exists():
        print(f"Arquivo XML não encontrado: {xml_path}")
        return 1

    try:
        # 2. Carrega o PFX e extrai as chaves
        ws = NFSeWebService.from_config(config)
        print(f"Serviço: {ws.url_servico}")
        print(f"Certificado expira em {ws.dias_para_expirar} dia(s)")

        # 3. Assina e envia o lote
        ws.definir_xml(xml_path)
        envio = ws.enviar_lote_rps()
    except NFSeError as exc:
        print(f"Erro: {exc}")
        return 1

    print("=== RESPOSTA RecepcionarLoteRps ===")
    print(envio.dados)

    if not envio.sucesso:
        for msg in envio.mensagens:
            print(f"[{msg['Codigo']}] {msg['Mensagem']} {msg['Correcao'] or ''}")
        return 1

    # 4. Consulta o lote pelo protocolo (precisa da inscrição municipal)
    if envio.protocolo and ws.inscricao_municipal:
        try:
            consulta = ws.consultar_lote_rps(envio.protocolo)
        except NFSeError as exc:
            print(f"Erro: {exc}")
            return 1
        print("=== RESPOSTA ConsultarLoteRps ===")
        print(f"Situação: {consulta.situacao}")
        print(consulta.dados)

    return 0


if __name__ == "__main__":
    sys.exit(main())
