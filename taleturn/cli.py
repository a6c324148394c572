"""
Taleturn CLI - Command-line interface for the session engine.

Usage:
    taleturn serve [--host H] [--port P]          Run the API server
    taleturn prompts [--pool face|numbered]       Print the prompt catalogs
    taleturn simulate [--players N] [--seed S]    Play a full game in memory
"""

import argparse
import logging
import random
import sys

from .config import HOST, LOG_LEVEL, PORT

# Upper bound on actions in a simulated game
MAX_SIMULATED_ACTIONS = 1000


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Taleturn - Collaborative storytelling sessions",
        prog="taleturn",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default=HOST, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=PORT, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    # Prompts command
    prompts_parser = subparsers.add_parser("prompts", help="Print the prompt catalogs")
    prompts_parser.add_argument(
        "--pool", choices=["face", "numbered"], help="Only print one pool"
    )

    # Simulate command
    simulate_parser = subparsers.add_parser("simulate", help="Play a full game in memory")
    simulate_parser.add_argument("--players", type=int, default=3, help="Number of players (2+)")
    simulate_parser.add_argument("--seed", type=int, default=None, help="Random seed")

    args = parser.parse_args()
    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "prompts":
        cmd_prompts(args)
    elif args.command == "simulate":
        cmd_simulate(args)
    else:
        parser.print_help()
        sys.exit(1)


def cmd_serve(args):
    """Run the API server."""
    import uvicorn

    print(f"Starting server at http://{args.host}:{args.port}")
    print(f"API Docs: http://{args.host}:{args.port}/api/docs")
    uvicorn.run(
        "taleturn.api.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=LOG_LEVEL.lower(),
    )


def cmd_prompts(args):
    """Print the prompt catalogs."""
    from .prompts import FACE_PROMPTS, NUMBERED_PROMPTS

    if args.pool in (None, "face"):
        print("Face prompts:")
        for prompt in FACE_PROMPTS:
            print(f"  {prompt.id:2d}. {prompt.card}: {prompt.prompt}")
    if args.pool is None:
        print()
    if args.pool in (None, "numbered"):
        print("Numbered prompts:")
        for prompt in NUMBERED_PROMPTS:
            print(f"  {prompt.card_number}/{prompt.draw_order}: {prompt.prompt}")


def cmd_simulate(args):
    """Play a full game in memory and print what happened."""
    if args.players < 2:
        print("Error: at least 2 players are needed")
        sys.exit(1)

    try:
        snapshot, log = simulate_game(args.players, args.seed)
    except RuntimeError as e:
        print(f"Error: {e}")
        sys.exit(1)

    for line in log:
        print(line)
    print()
    print(f"Game {snapshot.session.code} ended after {snapshot.session.cycle} cycles")
    print(f"Turns on the ledger: {len(snapshot.turns)}")


def simulate_game(players: int, seed=None):
    """
    Drive one game from creation to the end through the gateway.

    Returns (final snapshot, change log). Raises RuntimeError if any
    action is refused.
    """
    from .engine_core import ActionPayload, ActionType, ActorRef, Phase, PromptPoolAllocator, SessionMachine
    from .prompts import QUESTION_TOPICS
    from .session import FixedIdentity, GameSessionGateway

    rng = random.Random(seed)
    machine = SessionMachine(
        allocator=PromptPoolAllocator(rng=random.Random(rng.random())),
        rng=random.Random(rng.random()),
    )
    gateway = GameSessionGateway(machine=machine, rng=random.Random(rng.random()))
    log = []

    def record(result):
        if not result.success:
            raise RuntimeError(f"{result.error_code.value}: {result.error}")
        log.extend(result.state_changes)
        return result

    creator = ActorRef.account("player-1")
    created = record(gateway.create_session(creator, "Simulated Town", "Player 1"))
    session_id = created.new_state.session_id

    actors = [creator]
    for n in range(2, players + 1):
        actor = ActorRef.account(f"player-{n}")
        record(gateway.join(created.new_state.session.code, f"Player {n}", FixedIdentity(actor)))
        actors.append(actor)

    def act(actor, action_type, payload=None):
        return record(gateway.apply(session_id, action_type, actor, payload))

    def holder():
        snapshot = gateway.load(session_id)
        return snapshot.current_turn_holder.actor

    act(creator, ActionType.SET_LOCATION, ActionPayload(location="A harbor town at the edge of the map"))
    for actor in actors:
        act(actor, ActionType.CONFIRM_LOCATION)
    act(creator, ActionType.START_GAME)
    act(creator, ActionType.ROLL_CYCLE_LENGTH)
    act(creator, ActionType.CONFIRM_CYCLE_LENGTH)

    # Everyone introduces something, at least three times round the table
    for _ in range(max(3, players)):
        act(holder(), ActionType.DRAW_FACE_PROMPT)
    for actor in actors:
        act(actor, ActionType.TOGGLE_READY)
    act(creator, ActionType.ADVANCE_PHASE)

    topics = sorted(QUESTION_TOPICS)
    for _ in range(MAX_SIMULATED_ACTIONS):
        snapshot = gateway.load(session_id)
        if snapshot.session.phase == Phase.ENDED:
            return snapshot, log

        actor = holder()
        if snapshot.session.ten_flag:
            act(actor, ActionType.SELECT_TOPIC, ActionPayload(topic=rng.choice(topics)))
            act(actor, ActionType.CONTINUE_CYCLE)
            continue

        drawn = act(actor, ActionType.DRAW_NUMBERED_CARD)
        if not drawn.new_state.session.ten_flag:
            act(actor, ActionType.CONTINUE_TURN)

    raise RuntimeError(f"Game did not end within {MAX_SIMULATED_ACTIONS} rounds")


if __name__ == "__main__":
    main()
