"""Concept tagging for candidate moves.

Assigns tags from a controlled vocabulary (tactical, strategic and
endgame themes) to a move in a position. Pure python-chess board
inspection, no engine. Tags feed Choice.concept_tags and give the
explanation service a topic to talk about.
"""

from __future__ import annotations

import chess

TACTICS_TAGS = (
    "checkmate",
    "back_rank",
    "double_attack",
    "discovered_attack",
    "fork",
    "pin",
)

STRATEGY_TAGS = (
    "development",
    "center_control",
    "king_safety",
    "open_file",
    "piece_activity",
)

ENDGAME_TAGS = (
    "pawn_promotion",
    "passed_pawn",
    "king_activity",
)

DEFAULT_TAG = "development"

_PIECE_VALUES: dict[int, int] = {
    chess.PAWN: 1,
    chess.KNIGHT: 3,
    chess.BISHOP: 3,
    chess.ROOK: 5,
    chess.QUEEN: 9,
    chess.KING: 100,
}

_CENTER = chess.BB_D4 | chess.BB_E4 | chess.BB_D5 | chess.BB_E5
_BACK_RANKS = {chess.WHITE: chess.BB_RANK_1, chess.BLACK: chess.BB_RANK_8}
_SLIDERS = (chess.BISHOP, chess.ROOK, chess.QUEEN)


def attacked_squares(board: chess.Board, color: chess.Color) -> set[str]:
    """Names of all squares attacked by a side."""
    attacked = chess.SquareSet()
    for square in chess.SquareSet(board.occupied_co[color]):
        attacked |= board.attacks(square)
    return {chess.square_name(sq) for sq in attacked}


def newly_attacked_squares(board: chess.Board, move: chess.Move) -> list[str]:
    """Squares the mover attacks after the move but not before.

    Args:
        board: Position BEFORE the move.
        move: A legal move in that position.

    Returns:
        Sorted square names.
    """
    mover = board.turn
    before = attacked_squares(board, mover)
    after_board = board.copy(stack=False)
    after_board.push(move)
    after = attacked_squares(after_board, mover)
    return sorted(after - before, key=lambda name: chess.parse_square(name))


def _valuable_targets(board: chess.Board, square: int, enemy: chess.Color) -> int:
    count = 0
    for target in board.attacks(square):
        victim = board.piece_at(target)
        if victim is not None and victim.color == enemy:
            if _PIECE_VALUES[victim.piece_type] >= 3:
                count += 1
    return count


def _is_fork(after: chess.Board, move: chess.Move, mover: chess.Color) -> bool:
    return _valuable_targets(after, move.to_square, not mover) >= 2


def _is_pin(after: chess.Board, move: chess.Move, mover: chess.Color) -> bool:
    piece = after.piece_at(move.to_square)
    if piece is None or piece.piece_type not in _SLIDERS:
        return False
    enemy = not mover
    for square in chess.SquareSet(after.occupied_co[enemy]):
        if after.piece_type_at(square) == chess.KING:
            continue
        if after.is_pinned(enemy, square):
            if after.pin(enemy, square) & chess.BB_SQUARES[move.to_square]:
                return True
    return False


def _is_discovered_attack(
    before: chess.Board, after: chess.Board, move: chess.Move, mover: chess.Color
) -> bool:
    enemy = not mover
    for square in chess.SquareSet(after.occupied_co[mover]):
        if square == move.to_square or after.piece_type_at(square) not in _SLIDERS:
            continue
        gained = after.attacks(square) & ~before.attacks(square)
        for target in gained:
            victim = after.piece_at(target)
            if victim is not None and victim.color == enemy:
                if _PIECE_VALUES[victim.piece_type] >= 3:
                    return True
    return False


def _is_back_rank_mate(after: chess.Board) -> bool:
    if not after.is_checkmate():
        return False
    mated = after.turn
    king = after.king(mated)
    if king is None or not chess.BB_SQUARES[king] & _BACK_RANKS[mated]:
        return False
    king_rank = chess.square_rank(king)
    return any(chess.square_rank(sq) == king_rank for sq in after.checkers())


def _is_passed_pawn(after: chess.Board, square: int, color: chess.Color) -> bool:
    file = chess.square_file(square)
    rank = chess.square_rank(square)
    for enemy_sq in after.pieces(chess.PAWN, not color):
        if abs(chess.square_file(enemy_sq) - file) > 1:
            continue
        enemy_rank = chess.square_rank(enemy_sq)
        if (color == chess.WHITE and enemy_rank > rank) or (
            color == chess.BLACK and enemy_rank < rank
        ):
            return False
    return True


def _is_endgame(board: chess.Board) -> bool:
    queens = len(board.pieces(chess.QUEEN, chess.WHITE)) + len(
        board.pieces(chess.QUEEN, chess.BLACK)
    )
    minors_and_rooks = sum(
        len(board.pieces(pt, color))
        for pt in (chess.KNIGHT, chess.BISHOP, chess.ROOK)
        for color in chess.COLORS
    )
    return queens == 0 and minors_and_rooks <= 4


def _is_open_file(board: chess.Board, file: int) -> bool:
    pawns = board.pieces_mask(chess.PAWN, chess.WHITE) | board.pieces_mask(
        chess.PAWN, chess.BLACK
    )
    return not pawns & chess.BB_FILES[file]


def tag_move(board: chess.Board, move: chess.Move) -> list[str]:
    """Tag a move with the concepts it expresses.

    Tactical tags come first, then endgame, then strategic. Every move
    gets at least one tag.

    Args:
        board: Position BEFORE the move.
        move: A legal move in that position.

    Returns:
        Ordered, de-duplicated list of tags.
    """
    mover = board.turn
    piece = board.piece_at(move.from_square)
    after = board.copy(stack=False)
    after.push(move)

    tags: list[str] = []

    if after.is_checkmate():
        tags.append("back_rank" if _is_back_rank_mate(after) else "checkmate")
    if after.is_check() and len(after.checkers()) >= 2:
        tags.append("double_attack")
    if _is_discovered_attack(board, after, move, mover):
        tags.append("discovered_attack")
    if _is_fork(after, move, mover):
        tags.append("fork")
    if _is_pin(after, move, mover):
        tags.append("pin")

    if move.promotion is not None:
        tags.append("pawn_promotion")
    elif piece is not None and piece.piece_type == chess.PAWN:
        if _is_passed_pawn(after, move.to_square, mover):
            tags.append("passed_pawn")
    if piece is not None and piece.piece_type == chess.KING and _is_endgame(board):
        tags.append("king_activity")

    if board.is_castling(move):
        tags.append("king_safety")
    elif piece is not None and piece.piece_type in (chess.KNIGHT, chess.BISHOP):
        if chess.BB_SQUARES[move.from_square] & _BACK_RANKS[mover]:
            tags.append("development")
    if chess.BB_SQUARES[move.to_square] & _CENTER:
        tags.append("center_control")
    if piece is not None and piece.piece_type in (chess.ROOK, chess.QUEEN):
        if _is_open_file(after, chess.square_file(move.to_square)):
            tags.append("open_file")

    if not tags:
        tags.append("piece_activity")

    return list(dict.fromkeys(tags))


def primary_tag(board: chess.Board, move: chess.Move) -> str:
    """The most specific concept for a move."""
    return tag_move(board, move)[0]
