#!/usr/bin/env python3
"""
Script untuk Analisis Posisi
============================
Minta best move / evaluasi dari neural-network engine untuk satu posisi.

Penggunaan:
    python analyze.py                                   # Posisi awal, network default
    python analyze.py --network maia-1900 --moves e2e4 e7e5
    python analyze.py --model models/my-net.onnx.bin --fen "<FEN>"
    python analyze.py --mcts-nodes 400                  # Pakai MCTS
    python analyze.py --export-random-network random.pt # Buat TorchScript model untuk testing
"""

import argparse
import sys
import chess
from pathlib import Path
from tqdm import tqdm

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from chess_nn_engine import EngineClient, EngineError, load_config
from chess_nn_engine.config import find_network, get_model_url
from chess_nn_engine.models import create_network, export_torchscript


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Analisis posisi catur dengan Lc0-style network'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/default.yaml',
        help='Path ke file konfigurasi (default: config/default.yaml)'
    )

    parser.add_argument(
        '--network', '-n',
        type=str,
        default=None,
        help='Network id dari katalog di config'
    )

    parser.add_argument(
        '--model', '-m',
        type=str,
        default=None,
        help='URL atau path model (override --network)'
    )

    parser.add_argument(
        '--fen',
        type=str,
        default=chess.STARTING_FEN,
        help='Posisi awal (default: starting position)'
    )

    parser.add_argument(
        '--moves',
        nargs='*',
        default=[],
        help='Langkah UCI dari posisi --fen (membentuk history)'
    )

    parser.add_argument(
        '--temperature', '-t',
        type=float,
        default=None,
        help='Sampling temperature (0 = best move)'
    )

    parser.add_argument(
        '--mcts-nodes',
        type=int,
        default=0,
        help='Jumlah node MCTS (0 = policy saja)'
    )

    parser.add_argument(
        '--time-limit-ms',
        type=float,
        default=None,
        help='Batas waktu MCTS dalam milidetik'
    )

    parser.add_argument(
        '--backend',
        type=str,
        default=None,
        choices=['auto', 'onnx', 'torch'],
        help='Inference backend (default: dari config)'
    )

    parser.add_argument(
        '--device',
        type=str,
        default=None,
        choices=['auto', 'cuda', 'cpu'],
        help='Device untuk inference (default: dari config)'
    )

    parser.add_argument(
        '--export-random-network',
        type=str,
        default=None,
        metavar='PATH',
        help='Simpan TorchScript network random ke PATH lalu keluar'
    )

    return parser.parse_args()


def export_random_network(path: str):
    """Export Lc0StyleNetwork (weights random) sebagai TorchScript."""
    network = create_network({'num_filters': 32, 'num_residual_blocks': 2})
    Path(path).write_bytes(export_torchscript(network))
    print(f"💾 Random network ({network.get_config()['arch']}) disimpan ke {path}")


def resolve_model_url(args, config) -> str:
    """Tentukan model URL dari --model atau katalog network."""
    if args.model:
        return args.model

    network_id = args.network or config['models'].get('default_network')
    if network_id is None:
        raise SystemExit("❌ Tidak ada --model / --network dan default_network tidak diset")

    network = find_network(network_id, config)
    print(f"🧠 Network: {network['name']} ({network.get('arch', '?')}, ELO {network.get('elo', '?')})")
    return get_model_url(network['file'], config)


def build_history(fen: str, moves):
    """Mainkan moves dari fen, return (board, fen_history)."""
    board = chess.Board(fen)
    history = [board.fen()]
    for uci in moves:
        board.push_uci(uci)
        history.append(board.fen())
    return board, history


def format_wdl(wdl) -> str:
    win, draw, loss = wdl
    return f"W {win:.1%} / D {draw:.1%} / L {loss:.1%}"


def main():
    """Main function."""
    args = parse_args()

    if args.export_random_network:
        export_random_network(args.export_random_network)
        return

    config = load_config(args.config if Path(args.config).exists() else None)
    model_url = resolve_model_url(args, config)

    overrides = {}
    if args.backend:
        overrides['backend'] = args.backend
    if args.device:
        overrides['device'] = args.device

    board, history = build_history(args.fen, args.moves)
    temperature = args.temperature
    if temperature is None:
        temperature = config['engine'].get('temperature', 0.0)

    progress_bar = tqdm(total=100, desc='Loading model', unit='%')

    def on_state(delta):
        if 'loading_progress' in delta:
            progress_bar.n = int(round(delta['loading_progress'] * 100))
            progress_bar.refresh()
        if 'loading_message' in delta:
            progress_bar.set_postfix_str(delta['loading_message'])

    with EngineClient.from_config(config, **overrides) as client:
        unsubscribe = client.subscribe(on_state)
        try:
            client.init(model_url)
            client.wait_until_ready()
        except EngineError as e:
            progress_bar.close()
            print(f"❌ Gagal load model: {e}")
            sys.exit(1)
        progress_bar.close()
        unsubscribe()

        print("\n" + "=" * 60)
        print(board)
        print(f"\nGiliran: {'Putih' if board.turn == chess.WHITE else 'Hitam'}")
        print("=" * 60)

        try:
            if args.mcts_nodes > 0:
                result = client.mcts_search(
                    board.fen(), history, args.mcts_nodes, args.time_limit_ms
                ).result()
                print(f"\n🤖 Best move: {result.best_move} ({result.best_visits}/{result.total_nodes} visits)")
                for m in result.top_moves:
                    print(f"   {m['move']:<6} visits={m['visits']:<5} q={m['q']:+.3f} prior={m['prior']:.3f}")
                print(f"📊 {format_wdl(result.wdl)}")
            else:
                legal_moves = [m.uci() for m in board.legal_moves]
                result = client.get_best_move(board.fen(), history, legal_moves, temperature).result()
                print(f"\n🤖 Best move: {result.move} (confidence {result.confidence:.1%})")
                for move, confidence in result.top_moves:
                    print(f"   {move:<6} {confidence:.1%}")
                print(f"📊 {format_wdl(result.wdl)}")
        except EngineError as e:
            print(f"❌ {type(e).__name__}: {e}")
            sys.exit(1)


if __name__ == '__main__':
    main()
