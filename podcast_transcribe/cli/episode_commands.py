"""CLI commands for episode transcription.

Provides commands for:
- Adding episodes by audio URL
- Searching episode titles
- Submitting episodes for transcription
- Synchronizing and viewing transcription status
"""

import argparse
import asyncio
import logging
import os
import sys

import httpx

from ..audio.downloader import BoundedAudioDownloader
from ..audio.transcoder import AudioTranscoder
from ..config import Config
from ..db.factory import create_repository_from_config
from ..exceptions import TranscriptionError
from ..search.episode_search import EpisodeSearchService
from ..speech.client import SpeechTranscriptionClient
from ..storage.object_store import S3ObjectStore
from ..workflow.config import PipelineConfig
from ..workflow.runner import PipelineRunner
from ..workflow.submission import TranscriptionSubmissionService
from ..workflow.sync import TranscriptionStatusSynchronizer

# Set up logging
logging.basicConfig(
    level=getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_submission_service(config: Config, repository, runner: PipelineRunner) -> TranscriptionSubmissionService:
    """Wire a submission service from configuration."""
    return TranscriptionSubmissionService(
        repository=repository,
        object_store=S3ObjectStore.from_config(config),
        provider_client=SpeechTranscriptionClient.from_config(config),
        downloader=BoundedAudioDownloader(
            max_bytes=config.AUDIO_DOWNLOAD_MAX_BYTES,
            timeout=config.AUDIO_DOWNLOAD_TIMEOUT,
            chunk_size=config.AUDIO_CHUNK_SIZE,
            temp_directory=config.AUDIO_TEMP_DIRECTORY,
            debug_directory=config.AUDIO_DEBUG_DIRECTORY,
        ),
        transcoder=AudioTranscoder(
            ffmpeg_path=config.FFMPEG_PATH,
            ffprobe_path=config.FFPROBE_PATH,
            timeout=config.TRANSCODE_TIMEOUT,
            debug_directory=config.AUDIO_DEBUG_DIRECTORY,
        ),
        runner=runner,
    )


def _print_episode(episode) -> None:
    print(f"\nEpisode: {episode.id}")
    print(f"  Title: {episode.title or '(untitled)'}")
    print(f"  Audio: {episode.audio_url}")
    print(f"  Status: {episode.transcription_status}")
    if episode.processed_audio_uri:
        print(f"  Processed audio: {episode.processed_audio_uri}")
    if episode.provider_job_uri:
        print(f"  Provider job: {episode.provider_job_uri}")
    if episode.transcription_error:
        print(f"  Last error: {episode.transcription_error}")
    if episode.transcript_text:
        print(f"\n{episode.transcript_text}")


def submit_episode(args, config: Config):
    """
    Submit an episode for transcription.

    The pipeline runs on a background runner; the command does not exit
    until it has finished. With --wait the pipeline outcome is printed and
    a failed pipeline exits with status 1.
    """
    repository = create_repository_from_config(config)
    runner = PipelineRunner(PipelineConfig.from_env())
    runner.start()

    try:
        service = build_submission_service(config, repository, runner)
        result = service.submit(args.episode_id, retry_failed=args.retry)

        print(f"{result.message} (status: {result.status.value})")
        if not result.accepted:
            sys.exit(1)

        if args.wait and result.job is not None:
            print("Waiting for pipeline to finish...")
            outcome = runner.wait(args.episode_id)
            if outcome is not None:
                print(f"{'Submitted' if outcome.success else 'Failed'}: {outcome.message}")
                if not outcome.success:
                    sys.exit(1)
    except TranscriptionError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        runner.stop(wait=True)
        repository.close()


def sync_status(args, config: Config):
    """Synchronize an episode with the provider and print its status."""
    repository = create_repository_from_config(config)

    try:
        synchronizer = TranscriptionStatusSynchronizer(
            repository, SpeechTranscriptionClient.from_config(config)
        )
        raw_status = synchronizer.sync(args.episode_id)
        print(f"Provider status: {raw_status or '(none)'}")

        _print_episode(repository.get_episode(args.episode_id))
    except TranscriptionError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        repository.close()


def show_episode(args, config: Config):
    """Print a stored episode without contacting the provider."""
    repository = create_repository_from_config(config)

    try:
        episode = repository.get_episode(args.episode_id)
        if not episode:
            print(f"Episode not found: {args.episode_id}")
            sys.exit(1)
        _print_episode(episode)
    finally:
        repository.close()


def list_episodes(args, config: Config):
    """List stored episodes, optionally filtered by status."""
    repository = create_repository_from_config(config)

    try:
        episodes = repository.list_episodes(status=args.status, limit=args.limit)

        if not episodes:
            print("No episodes found")
            return

        print(f"\n{'Status':<12} {'ID':<45} Title")
        print("-" * 90)
        for episode in episodes:
            print(f"{episode.transcription_status:<12} {episode.id:<45} {episode.title}")
        print(f"\nTotal: {len(episodes)} episodes")
    finally:
        repository.close()


def search_episodes(args, config: Config):
    """
    Search episode titles.

    Uses the external catalogue when LISTENNOTES_API_KEY is set (matches are
    imported as NotStarted episodes), otherwise searches stored titles.
    """
    repository = create_repository_from_config(config)

    try:
        if config.has_search_api_key:
            service = EpisodeSearchService.from_config(config, repository)
            try:
                episodes = asyncio.run(service.search(args.query))
            except httpx.HTTPError as e:
                print(f"Episode search failed: {e}")
                sys.exit(1)
        else:
            episodes = repository.search_episodes_by_title(args.query, limit=args.limit)

        if not episodes:
            print(f"No episodes matching '{args.query}'")
            return

        for episode in episodes:
            print(f"{episode.id}  [{episode.transcription_status}]  {episode.title}")
    except TranscriptionError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        repository.close()


def add_episode(args, config: Config):
    """Add an episode by id and audio URL."""
    repository = create_repository_from_config(config)

    try:
        if repository.get_episode(args.episode_id):
            print(f"Episode already exists: {args.episode_id}")
            sys.exit(1)

        episode = repository.create_episode(
            audio_url=args.audio_url,
            title=args.title or "",
            episode_id=args.episode_id,
        )
        print(f"Added episode: {episode.id}")
    finally:
        repository.close()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        description="Podcast episode transcription CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--env-file",
        help="Path to .env file",
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # submit command
    submit_parser = subparsers.add_parser(
        "submit",
        help="Submit an episode for transcription",
    )
    submit_parser.add_argument("episode_id", help="Episode ID")
    submit_parser.add_argument(
        "--retry",
        action="store_true",
        help="Resubmit an episode whose last attempt failed",
    )
    submit_parser.add_argument(
        "--wait",
        action="store_true",
        help="Print the pipeline outcome and exit non-zero if it failed",
    )

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Synchronize an episode with the provider and show its status",
    )
    status_parser.add_argument("episode_id", help="Episode ID")

    # show command
    show_parser = subparsers.add_parser(
        "show",
        help="Show a stored episode",
    )
    show_parser.add_argument("episode_id", help="Episode ID")

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List episodes",
    )
    list_parser.add_argument(
        "--status",
        choices=["NotStarted", "Processing", "Submitted", "Running", "Succeeded", "Failed"],
        help="Only list episodes with this transcription status",
    )
    list_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum number of episodes to list",
    )

    # search command
    search_parser = subparsers.add_parser(
        "search",
        help="Search episodes by title",
    )
    search_parser.add_argument("query", help="Title search query")
    search_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum number of local results",
    )

    # add command
    add_parser = subparsers.add_parser(
        "add",
        help="Add an episode by audio URL",
    )
    add_parser.add_argument("episode_id", help="Episode ID")
    add_parser.add_argument("audio_url", help="URL of the episode audio")
    add_parser.add_argument("--title", help="Episode title", default=None)

    return parser


def main():
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Load configuration
    config = Config(env_file=args.env_file)

    # Route to appropriate command
    commands = {
        "submit": submit_episode,
        "status": sync_status,
        "show": show_episode,
        "list": list_episodes,
        "search": search_episodes,
        "add": add_episode,
    }

    command_func = commands.get(args.command)
    if command_func:
        command_func(args, config)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
