import argparse
import asyncio
import json
import logging
import re
from pathlib import Path

from .catalog import MUTABLE_PROPERTIES
from .config import (
    CLASSIC_ERA_BEFORE,
    DEFAULT_AMOUNT,
    EARLIEST_DECADE,
    IMPORT_CHUNK_SIZE,
    LANGUAGE_CODES,
    RECOMMENDATIONS_DIR,
    TOP_IN_GENRE_LIMIT,
    USER_TOP_LIMIT,
)
from .dataset import build_memory_store, dataset_from_store, load_dataset, save_dataset, seed_store
from .engine import RecommendationEngine
from .engine_config import EngineConfig
from .errors import InvalidInput, RecommenderError
from .export import save_recommendations
from .graph_store import GraphStore
from .insights import GraphInsights
from .models import AttributeCriteria, NodeLabel, RankedMovie, Relation, RuntimeRange
from .neo4j_store import Neo4jGraphStore, Neo4jSettings

logger = logging.getLogger(__name__)


def _parse_decade(value: str) -> list[int]:
    """
    Parse an era argument: '1990', '1990s', '90s' or 'classic'.

    'classic' expands to every decade before CLASSIC_ERA_BEFORE.
    """
    cleaned = value.strip().lower()
    if cleaned.startswith("classic"):
        return list(range(EARLIEST_DECADE, CLASSIC_ERA_BEFORE, 10))

    match = re.match(r'^(\d{2}|\d{4})s?$', cleaned)
    if not match:
        raise InvalidInput(f"Invalid decade: {value}")
    year = int(match.group(1))
    if year < 100:
        year += 1900 if year >= 30 else 2000
    return [(year // 10) * 10]


def _parse_language(value: str) -> str:
    """Map a language name to its code; codes pass through lowercased."""
    cleaned = value.strip().lower()
    return LANGUAGE_CODES.get(cleaned, cleaned)


def _parse_assignments(label: NodeLabel, assignments: list[str] | None) -> dict:
    """
    Parse key=value pairs into typed updates using the label's allow-list.

    An empty value clears the property.
    """
    allowed = MUTABLE_PROPERTIES[label]
    updates = {}
    for entry in assignments or []:
        if "=" not in entry:
            raise InvalidInput(f"Expected key=value, got '{entry}'")
        key, raw = entry.split("=", 1)
        key = key.strip()
        expected = allowed.get(key)
        if expected is None:
            raise InvalidInput(f"{label.value}.{key} is not updatable")
        if raw == "":
            updates[key] = None
            continue
        try:
            updates[key] = expected(raw)
        except ValueError:
            raise InvalidInput(f"{label.value}.{key} expects {expected.__name__}, got '{raw}'") from None
    return updates


def _open_store(args: argparse.Namespace) -> GraphStore:
    """In-memory store from --dataset, otherwise Neo4j from the environment."""
    dataset_path = getattr(args, 'dataset', None)
    if dataset_path:
        return build_memory_store(load_dataset(Path(dataset_path)))
    return Neo4jGraphStore(Neo4jSettings.from_env())


def _engine_config(args: argparse.Namespace) -> EngineConfig:
    path = getattr(args, 'engine_config', None)
    return EngineConfig.from_file(Path(path)) if path else EngineConfig()


def _output_recommendations(recs: list[RankedMovie], args: argparse.Namespace, strategy: str) -> None:
    """Format and log recommendations in the requested format."""
    output_format = getattr(args, 'format', 'text')

    if output_format == 'json':
        logger.info(json.dumps([r.to_dict() for r in recs], indent=2))

    elif output_format == 'csv':
        logger.info("Title,Year,Runtime,Language,Genres,Score")
        for r in recs:
            genres = "; ".join(r.genres).replace('"', '""')
            title = r.title.replace('"', '""')
            logger.info(f'"{title}",{r.year},{r.runtime},{r.language},"{genres}",{r.score:g}')

    elif output_format == 'markdown':
        logger.info(f"\n# Top {len(recs)} recommendations ({strategy})\n")
        for i, r in enumerate(recs, 1):
            logger.info(f"## {i}. {r.title} ({r.year})")
            logger.info(f"**Score**: {r.score:g}  ")
            logger.info(f"**Genres**: {', '.join(r.genres) or '-'}\n")

    else:  # text format
        if not recs:
            logger.info(f"No recommendations found ({strategy}).")
            return
        logger.info(f"\nTop {len(recs)} recommendations ({strategy}):")
        for i, r in enumerate(recs, 1):
            logger.info(f"{i}. {r.title} ({r.year}) - Score: {r.score:g}")
            logger.info(f"   Genres: {', '.join(r.genres) or '-'}")
            if r.directors:
                logger.info(f"   Directed by: {', '.join(r.directors)}")
            if r.voters is not None:
                logger.info(f"   Liked by {r.voters} similar users")
            elif r.breakdown:
                parts = ", ".join(f"{k} {v}" for k, v in r.breakdown.items() if v)
                logger.info(f"   Matched: {parts or 'nothing'}")


def _finish(recs: list[RankedMovie], args: argparse.Namespace, strategy: str, preferences: dict) -> None:
    _output_recommendations(recs, args, strategy)
    if getattr(args, 'save', False):
        save_recommendations(strategy, preferences, recs, Path(args.save_dir))


async def _recommend_async(
    args: argparse.Namespace, strategy: str, engine_config: EngineConfig | None = None
) -> list[RankedMovie]:
    async with _open_store(args) as store:
        engine = RecommendationEngine(store, engine_config or _engine_config(args))
        if strategy == 'similar':
            return await engine.recommend_by_user_similarity(args.titles, args.limit, args.min_rating)
        if strategy == 'content':
            return await engine.recommend_by_content(args.titles, args.limit)
        return await engine.recommend_by_attributes(_criteria_from_args(args), args.limit)


def _criteria_from_args(args: argparse.Namespace) -> AttributeCriteria:
    runtime = None
    if args.runtime_min is not None or args.runtime_max is not None:
        defaults = RuntimeRange()
        runtime = RuntimeRange(
            args.runtime_min if args.runtime_min is not None else defaults.min,
            args.runtime_max if args.runtime_max is not None else defaults.max,
        )
    decades = set()
    for value in args.decades or []:
        decades.update(_parse_decade(value))
    return AttributeCriteria(
        genres=set(args.genres or []),
        directors=set(args.directors or []),
        actors=set(args.actors or []),
        runtime=runtime,
        languages={_parse_language(v) for v in args.languages or []},
        release_decades=decades,
    )


def cmd_similar(args: argparse.Namespace) -> None:
    """Recommend from users who liked the same titles."""
    engine_config = _engine_config(args)
    threshold = args.min_rating if args.min_rating is not None else engine_config.min_rating
    recs = asyncio.run(_recommend_async(args, 'similar', engine_config))
    _finish(recs, args, 'user-similarity', {"likedTitles": args.titles, "minRating": threshold})


def cmd_content(args: argparse.Namespace) -> None:
    """Recommend titles similar in genre, direction and cast."""
    recs = asyncio.run(_recommend_async(args, 'content'))
    _finish(recs, args, 'content-based', {"seedTitles": args.titles})


def cmd_attributes(args: argparse.Namespace) -> None:
    """Recommend titles matching requested attributes."""
    criteria = _criteria_from_args(args)
    recs = asyncio.run(_recommend_async(args, 'attributes'))
    _finish(recs, args, 'attribute-weighted', criteria.to_dict())


def cmd_seed(args: argparse.Namespace) -> None:
    """Push a JSON snapshot into Neo4j."""
    dataset = load_dataset(Path(args.file))

    async def _seed():
        async with Neo4jGraphStore(Neo4jSettings.from_env()) as store:
            return await seed_store(dataset, store, batch_size=args.batch)

    written = asyncio.run(_seed())
    logger.info(f"Seed completed from {args.file}: {written}")


def cmd_popular(args: argparse.Namespace) -> None:
    """Show the highest and lowest rated movies."""
    async def _popular():
        async with _open_store(args) as store:
            insights = GraphInsights(store)
            return await insights.most_popular_movie(), await insights.least_popular_movie()

    best, worst = asyncio.run(_popular())
    logger.info(f"Most popular: {best or '-'}")
    logger.info(f"Least popular: {worst or '-'}")


def cmd_top_genre(args: argparse.Namespace) -> None:
    """Show the best rated movies in a genre."""
    async def _top():
        async with _open_store(args) as store:
            return await GraphInsights(store).top_movies_in_genre(args.genre, args.limit)

    rows = asyncio.run(_top())
    if not rows:
        logger.info(f"No rated movies in genre '{args.genre}'")
        return
    logger.info(f"\nTop {len(rows)} in {args.genre}:")
    for i, row in enumerate(rows, 1):
        logger.info(f"{i}. {row['title']} - avg {row['avgRating']:.2f}")


def cmd_user(args: argparse.Namespace) -> None:
    """Summarize one user's ratings."""
    async def _user():
        async with _open_store(args) as store:
            insights = GraphInsights(store)
            return (
                await insights.user_top_rated(args.user_id, args.limit),
                await insights.user_lowest_rated(args.user_id, args.limit),
                await insights.most_liked_genre(args.user_id),
                await insights.similar_users(args.user_id),
            )

    top, lowest, genre, similar = asyncio.run(_user())
    if not top:
        logger.error(f"No ratings for user '{args.user_id}'")
        return
    logger.info(f"\nUser {args.user_id}")
    logger.info("Top rated: " + ", ".join(f"{r['title']} ({r['rating']:g})" for r in top))
    logger.info("Lowest rated: " + ", ".join(f"{r['title']} ({r['rating']:g})" for r in lowest))
    logger.info(f"Most liked genre: {genre or '-'}")
    logger.info(f"Similar users: {', '.join(similar) or '-'}")


def cmd_director(args: argparse.Namespace) -> None:
    """Show who a director works with and their usual genre."""
    async def _director():
        async with _open_store(args) as store:
            insights = GraphInsights(store)
            return (
                await insights.actors_for_director(args.name),
                await insights.most_frequent_genre_for_director(args.name),
            )

    actors, genre = asyncio.run(_director())
    logger.info(f"\nDirector {args.name}")
    logger.info(f"Actors: {', '.join(actors) or '-'}")
    logger.info(f"Most frequent genre: {genre or '-'}")


def cmd_movie(args: argparse.Namespace) -> None:
    """Show one movie with its genres, people and ratings."""
    async def _movie():
        async with _open_store(args) as store:
            return await GraphInsights(store).movie_details(args.title)

    details = asyncio.run(_movie())
    if details is None:
        logger.error(f"Movie '{args.title}' not found")
        return
    logger.info(f"\n{details['title']} ({details.get('year', '?')})")
    logger.info(f"Runtime: {details.get('runtime', '?')} min, language: {details.get('original_language', '?')}")
    logger.info(f"Genres: {', '.join(details['genres']) or '-'}")
    logger.info(f"Directed by: {', '.join(details['directors']) or '-'}")
    logger.info(f"Cast: {', '.join(details['actors']) or '-'}")
    if details["avgRating"] is None:
        logger.info("Not rated yet")
    else:
        logger.info(f"Rated {details['ratingCount']} times, avg {details['avgRating']:.2f}")


def cmd_genre(args: argparse.Namespace) -> None:
    """List the movies in a genre."""
    async def _genre():
        async with _open_store(args) as store:
            return await GraphInsights(store).movies_in_genre(args.name)

    titles = asyncio.run(_genre())
    if not titles:
        logger.info(f"No movies in genre '{args.name}'")
        return
    logger.info(f"\n{args.name} ({len(titles)} movies): {', '.join(titles)}")


async def _write(args: argparse.Namespace, operation) -> bool:
    """
    Run ``operation(store)`` against the selected store.

    With --dataset the snapshot file is rewritten after a successful write,
    so changes outlive the in-memory graph.
    """
    store = _open_store(args)
    async with store:
        changed = await operation(store)
    if changed and getattr(args, 'dataset', None):
        save_dataset(dataset_from_store(store), Path(args.dataset))
    return changed


def cmd_add_movie(args: argparse.Namespace) -> None:
    """Create or update a movie and link its genres and people."""
    props = {k: v for k, v in _parse_assignments(NodeLabel.MOVIE, args.set).items() if v is not None}

    async def _add(store: GraphStore) -> bool:
        await store.upsert_nodes(NodeLabel.MOVIE, [{"title": args.title, **props}])
        await store.upsert_edges(Relation.HAS_GENRE, [{"source": args.title, "target": g} for g in args.genres or []])
        await store.upsert_edges(
            Relation.DIRECTED_BY, [{"source": args.title, "target": d} for d in args.directors or []]
        )
        await store.upsert_edges(Relation.ACTED_IN, [{"source": a, "target": args.title} for a in args.actors or []])
        return True

    asyncio.run(_write(args, _add))
    logger.info(f"Saved movie '{args.title}'")


def cmd_add_user(args: argparse.Namespace) -> None:
    """Create or update a user."""
    row = {"userId": args.user_id}
    if args.name:
        row["name"] = args.name

    async def _add(store: GraphStore) -> bool:
        return await store.upsert_nodes(NodeLabel.USER, [row]) > 0

    asyncio.run(_write(args, _add))
    logger.info(f"Saved user '{args.user_id}'")


def cmd_add_rating(args: argparse.Namespace) -> None:
    """Record (or replace) a user's rating of an existing movie."""
    async def _rate(store: GraphStore) -> bool:
        if not await store.find_nodes_by_label(NodeLabel.MOVIE, {"title": args.title}):
            return False
        rows = [{"source": args.user_id, "target": args.title, "rating": args.rating}]
        return await store.upsert_edges(Relation.RATED, rows) > 0

    if asyncio.run(_write(args, _rate)):
        logger.info(f"User '{args.user_id}' rated '{args.title}' {args.rating:g}")
    else:
        logger.error(f"Movie '{args.title}' not found")


def cmd_update_movie(args: argparse.Namespace) -> None:
    """Update allow-listed properties of a movie."""
    updates = _parse_assignments(NodeLabel.MOVIE, args.set)

    if asyncio.run(_write(args, lambda store: store.update_node(NodeLabel.MOVIE, args.title, updates))):
        logger.info(f"Updated '{args.title}': {updates}")
    else:
        logger.error(f"Movie '{args.title}' not found")


def cmd_delete_movie(args: argparse.Namespace) -> None:
    """Delete a movie and its relationships."""
    if asyncio.run(_write(args, lambda store: store.delete_node(NodeLabel.MOVIE, args.title))):
        logger.info(f"Deleted '{args.title}'")
    else:
        logger.error(f"Movie '{args.title}' not found")


def _add_output_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--limit", type=int, default=DEFAULT_AMOUNT, help="Number of recommendations")
    parser.add_argument("--format", choices=["text", "json", "markdown", "csv"], default="text",
                        help="Output format")
    parser.add_argument("--save", action="store_true", help="Save results as JSON")
    parser.add_argument("--save-dir", default=str(RECOMMENDATIONS_DIR), help="Directory for saved results")
    parser.add_argument("--engine-config", help="JSON file with engine overrides")


def main():
    parser = argparse.ArgumentParser(description="Movie Graph Recommender")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--dataset", help="Use a JSON snapshot in memory instead of Neo4j")
    subparsers = parser.add_subparsers(dest="command", required=True)

    similar_parser = subparsers.add_parser("similar", help="Recommend from users with similar taste")
    similar_parser.add_argument("titles", nargs="+", help="Titles you liked")
    similar_parser.add_argument("--min-rating", type=float,
                                help="Rating that counts as liking a movie (default: engine config min_rating)")
    _add_output_args(similar_parser)
    similar_parser.set_defaults(func=cmd_similar)

    content_parser = subparsers.add_parser("content", help="Recommend by shared genres, directors, actors")
    content_parser.add_argument("titles", nargs="+", help="Seed titles")
    _add_output_args(content_parser)
    content_parser.set_defaults(func=cmd_content)

    attributes_parser = subparsers.add_parser("attributes", help="Recommend by requested attributes")
    attributes_parser.add_argument("--genres", nargs="+", help="Genres")
    attributes_parser.add_argument("--directors", nargs="+", help="Directors")
    attributes_parser.add_argument("--actors", nargs="+", help="Actors")
    attributes_parser.add_argument("--runtime-min", type=int, help="Minimum runtime (minutes)")
    attributes_parser.add_argument("--runtime-max", type=int, help="Maximum runtime (minutes)")
    attributes_parser.add_argument("--languages", nargs="+", help="Language names or codes (e.g. English, ja)")
    attributes_parser.add_argument("--decades", nargs="+", help="Decades (e.g. 1990s, 2000, classic)")
    _add_output_args(attributes_parser)
    attributes_parser.set_defaults(func=cmd_attributes)

    seed_parser = subparsers.add_parser("seed", help="Load a JSON snapshot into Neo4j")
    seed_parser.add_argument("file", help="Snapshot file")
    seed_parser.add_argument("--batch", type=int, default=IMPORT_CHUNK_SIZE, help="Rows per write")
    seed_parser.set_defaults(func=cmd_seed)

    popular_parser = subparsers.add_parser("popular", help="Highest and lowest rated movies")
    popular_parser.set_defaults(func=cmd_popular)

    top_genre_parser = subparsers.add_parser("top-genre", help="Best rated movies in a genre")
    top_genre_parser.add_argument("genre", help="Genre name")
    top_genre_parser.add_argument("--limit", type=int, default=TOP_IN_GENRE_LIMIT, help="Number of movies")
    top_genre_parser.set_defaults(func=cmd_top_genre)

    user_parser = subparsers.add_parser("user", help="Summarize a user's ratings")
    user_parser.add_argument("user_id", help="User id")
    user_parser.add_argument("--limit", type=int, default=USER_TOP_LIMIT, help="Movies per list")
    user_parser.set_defaults(func=cmd_user)

    director_parser = subparsers.add_parser("director", help="Summarize a director")
    director_parser.add_argument("name", help="Director name")
    director_parser.set_defaults(func=cmd_director)

    movie_parser = subparsers.add_parser("movie", help="Show a movie")
    movie_parser.add_argument("title", help="Movie title")
    movie_parser.set_defaults(func=cmd_movie)

    genre_parser = subparsers.add_parser("genre", help="List the movies in a genre")
    genre_parser.add_argument("name", help="Genre name")
    genre_parser.set_defaults(func=cmd_genre)

    add_movie_parser = subparsers.add_parser("add-movie", help="Create or update a movie")
    add_movie_parser.add_argument("title", help="Movie title")
    add_movie_parser.add_argument("--set", nargs="+", metavar="KEY=VALUE", help="Movie properties")
    add_movie_parser.add_argument("--genres", nargs="+", help="Genres")
    add_movie_parser.add_argument("--directors", nargs="+", help="Directors")
    add_movie_parser.add_argument("--actors", nargs="+", help="Actors")
    add_movie_parser.set_defaults(func=cmd_add_movie)

    add_user_parser = subparsers.add_parser("add-user", help="Create or update a user")
    add_user_parser.add_argument("user_id", help="User id")
    add_user_parser.add_argument("--name", help="Display name")
    add_user_parser.set_defaults(func=cmd_add_user)

    rating_parser = subparsers.add_parser("add-rating", help="Rate a movie")
    rating_parser.add_argument("user_id", help="User id")
    rating_parser.add_argument("title", help="Movie title")
    rating_parser.add_argument("rating", type=float, help="Rating (positive number)")
    rating_parser.set_defaults(func=cmd_add_rating)

    update_parser = subparsers.add_parser("update-movie", help="Update movie properties")
    update_parser.add_argument("title", help="Movie title")
    update_parser.add_argument("--set", nargs="+", required=True, metavar="KEY=VALUE",
                               help="Properties to set (empty value clears)")
    update_parser.set_defaults(func=cmd_update_movie)

    delete_parser = subparsers.add_parser("delete-movie", help="Delete a movie")
    delete_parser.add_argument("title", help="Movie title")
    delete_parser.set_defaults(func=cmd_delete_movie)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        args.func(args)
    except RecommenderError as exc:
        logger.error(f"{type(exc).__name__}: {exc}")
        raise SystemExit(1)
    except KeyboardInterrupt:
        logger.warning("Interrupted; discarding partial results")
        raise SystemExit(130)
