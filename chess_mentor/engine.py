"""Analysis gateways for Chess Mentor.

StockfishAnalysisGateway drives Stockfish through python-chess's
asyncio UCI interface. MaterialAnalysisGateway is an engine-free
stand-in that counts material and plays greedy lines, used when
Stockfish is not installed.

Both report evaluations in centipawns from White's point of view and
principal variations as UCI move codes.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import shutil
import sys
from pathlib import Path

import chess
import chess.engine

from chess_mentor.models import AnalysisResult, ScoredMove

logger = logging.getLogger(__name__)

# Stockfish search paths in priority order
_STOCKFISH_PATHS = [
    "/opt/homebrew/bin/stockfish",
    "/usr/local/bin/stockfish",
    "/usr/games/stockfish",
    "/usr/bin/stockfish",
]

_MATE_SCORE = 10000
_MIN_UCI_ELO = 1320
_MAX_UCI_ELO = 3190
_SCORE_DEPTH = 8
_ILLEGAL_DELTA = -1000


def _find_stockfish() -> str:
    """Auto-detect Stockfish binary path.

    Checks known install paths, then falls back to PATH lookup.

    Returns:
        Path to Stockfish binary.

    Raises:
        FileNotFoundError: If Stockfish is not found anywhere.
    """
    for path_str in _STOCKFISH_PATHS:
        if Path(path_str).is_file():
            return path_str

    which_result = shutil.which("stockfish")
    if which_result is not None:
        return which_result

    raise FileNotFoundError(
        "Stockfish not found. Install it or set CHESS_MENTOR_STOCKFISH_PATH."
    )


def _parse_move(board: chess.Board, move_code: str) -> chess.Move | None:
    """Parse a UCI code and return it only if legal in the position."""
    try:
        move = chess.Move.from_uci(move_code)
    except (chess.InvalidMoveError, ValueError):
        return None
    if move not in board.legal_moves:
        return None
    return move


def _mover_delta(board: chess.Board, base_eval: int, new_eval: int) -> int:
    """Evaluation change seen from the side to move in board."""
    if board.turn == chess.WHITE:
        return new_eval - base_eval
    return base_eval - new_eval


class StockfishAnalysisGateway:
    """Stockfish-backed analysis oracle.

    A single UCI process serves all callers; commands are serialised
    with an asyncio lock because a new UCI search stops the running one.
    """

    def __init__(self, stockfish_path: str | None = None) -> None:
        """Prepare the gateway. The engine process starts lazily.

        Args:
            stockfish_path: Explicit path to Stockfish binary.
                If None, auto-detects from known locations.

        Raises:
            FileNotFoundError: If Stockfish is not found.
        """
        self._stockfish_path = stockfish_path or _find_stockfish()
        self._engine: chess.engine.UciProtocol | None = None
        self._lock = asyncio.Lock()
        self._strength: int | None = None

    async def _open_engine(self) -> chess.engine.UciProtocol:
        """Start a fresh Stockfish process and re-apply the strength."""
        _, engine = await chess.engine.popen_uci(self._stockfish_path)
        if self._strength is not None:
            await engine.configure(
                {"UCI_LimitStrength": True, "UCI_Elo": self._strength}
            )
        return engine

    async def _ensure_engine(self) -> chess.engine.UciProtocol:
        """Return a live engine, restarting once if it terminated."""
        if self._engine is None:
            self._engine = await self._open_engine()
            return self._engine
        try:
            await self._engine.ping()
        except chess.engine.EngineTerminatedError:
            logger.warning("Stockfish terminated, restarting")
            self._engine = await self._open_engine()
        return self._engine

    async def _analyse(self, board: chess.Board, depth: int) -> chess.engine.InfoDict:
        async with self._lock:
            engine = await self._ensure_engine()
            try:
                return await engine.analyse(board, chess.engine.Limit(depth=depth))
            except chess.engine.EngineTerminatedError:
                self._engine = await self._open_engine()
                return await self._engine.analyse(board, chess.engine.Limit(depth=depth))

    async def analyze(self, position: str, depth: int = 12) -> AnalysisResult:
        """Evaluate a position and return its best line.

        Args:
            position: FEN of the position.
            depth: Search depth.

        Returns:
            AnalysisResult with White-POV eval and UCI principal variation.
        """
        board = chess.Board(position)
        if board.is_game_over():
            outcome = board.outcome()
            if outcome is not None and outcome.winner is not None:
                score = _MATE_SCORE if outcome.winner == chess.WHITE else -_MATE_SCORE
            else:
                score = 0
            return AnalysisResult(eval=score, principal_variation=[], depth=0)

        info = await self._analyse(board, depth)
        score = info["score"].white().score(mate_score=_MATE_SCORE)
        pv = [m.uci() for m in info.get("pv", [])]
        return AnalysisResult(
            eval=int(score),
            principal_variation=pv,
            depth=int(info.get("depth", depth)),
        )

    async def is_legal(self, position: str, move: str) -> bool:
        return _parse_move(chess.Board(position), move) is not None

    async def score_moves(self, position: str, moves: list[str]) -> list[ScoredMove]:
        """Score candidate moves against the position's evaluation.

        Args:
            position: FEN before the moves.
            moves: UCI codes to score.

        Returns:
            ScoredMove list sorted best-first for the side to move.
            Illegal moves get a large negative delta and an empty line.
        """
        board = chess.Board(position)
        base = await self.analyze(position, depth=10)
        results: list[ScoredMove] = []
        for move_code in moves:
            move = _parse_move(board, move_code)
            if move is None:
                results.append(ScoredMove(move=move_code, eval_delta=_ILLEGAL_DELTA))
                continue
            after = board.copy(stack=False)
            after.push(move)
            analysis = await self.analyze(after.fen(), depth=_SCORE_DEPTH)
            results.append(
                ScoredMove(
                    move=move_code,
                    eval_delta=_mover_delta(board, base.eval, analysis.eval),
                    principal_variation=[move_code] + analysis.principal_variation[:3],
                )
            )
        results.sort(key=lambda s: s.eval_delta, reverse=True)
        return results

    async def set_strength(self, rating: int) -> None:
        """Limit engine strength via UCI_Elo (clamped to Stockfish's range)."""
        self._strength = max(_MIN_UCI_ELO, min(_MAX_UCI_ELO, rating))
        async with self._lock:
            engine = await self._ensure_engine()
            await engine.configure(
                {"UCI_LimitStrength": True, "UCI_Elo": self._strength}
            )

    async def close(self) -> None:
        """Clean up the Stockfish process."""
        if self._engine is None:
            return
        try:
            await self._engine.quit()
        except chess.engine.EngineTerminatedError:
            pass
        self._engine = None


# ---------------------------------------------------------------------------
# Engine-free fallback
# ---------------------------------------------------------------------------

_PIECE_CP: dict[int, int] = {
    chess.PAWN: 100,
    chess.KNIGHT: 320,
    chess.BISHOP: 330,
    chess.ROOK: 500,
    chess.QUEEN: 900,
    chess.KING: 0,
}


def material_eval(board: chess.Board) -> int:
    """Static material balance in centipawns, White minus Black."""
    if board.is_checkmate():
        return -_MATE_SCORE if board.turn == chess.WHITE else _MATE_SCORE
    score = 0
    for piece_type, value in _PIECE_CP.items():
        score += value * len(board.pieces(piece_type, chess.WHITE))
        score -= value * len(board.pieces(piece_type, chess.BLACK))
    return score


def _greedy_move(board: chess.Board) -> chess.Move | None:
    """Pick the move that maximises material for the side to move."""
    best: chess.Move | None = None
    best_score = -_MATE_SCORE * 2
    sign = 1 if board.turn == chess.WHITE else -1
    for move in board.legal_moves:
        board.push(move)
        score = sign * material_eval(board)
        board.pop()
        if score > best_score:
            best, best_score = move, score
    return best


def greedy_line(board: chess.Board, plies: int) -> list[str]:
    line: list[str] = []
    temp = board.copy(stack=False)
    for _ in range(plies):
        move = _greedy_move(temp)
        if move is None:
            break
        line.append(move.uci())
        temp.push(move)
    return line


class MaterialAnalysisGateway:
    """Analysis oracle that needs no engine binary.

    Evaluation is plain material; the principal variation is a greedy
    capture-first line. Good enough to keep a game running and for tests.
    """

    def __init__(self) -> None:
        self.strength: int | None = None

    async def analyze(self, position: str, depth: int = 1) -> AnalysisResult:
        board = chess.Board(position)
        return AnalysisResult(
            eval=material_eval(board),
            principal_variation=greedy_line(board, 3),
            depth=1,
        )

    async def is_legal(self, position: str, move: str) -> bool:
        return _parse_move(chess.Board(position), move) is not None

    async def score_moves(self, position: str, moves: list[str]) -> list[ScoredMove]:
        board = chess.Board(position)
        base = material_eval(board)
        results: list[ScoredMove] = []
        for move_code in moves:
            move = _parse_move(board, move_code)
            if move is None:
                results.append(ScoredMove(move=move_code, eval_delta=_ILLEGAL_DELTA))
                continue
            after = board.copy(stack=False)
            after.push(move)
            results.append(
                ScoredMove(
                    move=move_code,
                    eval_delta=_mover_delta(board, base, material_eval(after)),
                    principal_variation=[move_code] + greedy_line(after, 2),
                )
            )
        results.sort(key=lambda s: s.eval_delta, reverse=True)
        return results

    async def set_strength(self, rating: int) -> None:
        self.strength = rating

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# CLI interface
# ---------------------------------------------------------------------------


async def _cli_analyze(fen: str, depth: int, material: bool) -> None:
    """Analyze a FEN position and print the best line."""
    gateway = MaterialAnalysisGateway() if material else StockfishAnalysisGateway()
    try:
        result = await gateway.analyze(fen, depth=depth)
    finally:
        await gateway.close()

    board = chess.Board(fen)
    print(f"Position: {fen}")
    print(f"Side to move: {'White' if board.turn else 'Black'}")
    print(f"Eval: {result.eval / 100.0:+.2f} (depth {result.depth})")
    print(f"Best line: {' '.join(result.principal_variation[:6])}")


def main() -> None:
    """CLI entry point for engine.py."""
    parser = argparse.ArgumentParser(description="Analyze a chess position")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    analyze_parser = subparsers.add_parser("analyze", help="Analyze a FEN position")
    analyze_parser.add_argument("fen", type=str, help="FEN string to analyze")
    analyze_parser.add_argument("--depth", type=int, default=12, help="Search depth")
    analyze_parser.add_argument(
        "--material", action="store_true", help="Use the engine-free material oracle"
    )

    args = parser.parse_args()

    if args.command == "analyze":
        asyncio.run(_cli_analyze(args.fen, args.depth, args.material))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
