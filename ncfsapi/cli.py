"""
ncfs CLI：登录一次把 end_point 与用户名保存到本地，之后各命令都以该身份调用存储驱动。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer

from ncfsapi.cli_config import clear_config, load_config, save_config
from ncfsapi.driver import DriverConfig, StorageDriver
from ncfsapi.errors import StorageError
from ncfsapi.models import Reference, ResourceType, as_dict
from ncfsapi.transport import RequestContext


def _format_size(n: int) -> str:
    """将字节数格式化为人类可读（KiB/MiB/GiB）。"""
    if n < 1024:
        return f"{n} B"
    if n < 1024 * 1024:
        return f"{n / 1024:.1f} KiB"
    if n < 1024 * 1024 * 1024:
        return f"{n / (1024 * 1024):.1f} MiB"
    return f"{n / (1024 * 1024 * 1024):.1f} GiB"


_KIND = {
    ResourceType.FILE: "-",
    ResourceType.CONTAINER: "d",
    ResourceType.REFERENCE: "r",
    ResourceType.SYMLINK: "l",
}

app = typer.Typer(
    name="ncfs",
    help="Nextcloud ScienceMesh storage CLI. Log in once; saved settings are used by all commands.",
)

# 可选参数：覆盖已保存的 end_point / 用户名
_end_point_option: type = Annotated[
    Optional[str],
    typer.Option("--end-point", "-e", help="Override saved end point (required if not logged in)"),
]
_user_option: type = Annotated[
    Optional[str],
    typer.Option("--user", "-u", help="Override saved username"),
]


@app.callback()
def _main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log requests to stderr")] = False,
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s %(levelname)s %(message)s")


def _get_driver(end_point: str, mock_http: bool = False) -> StorageDriver:
    return StorageDriver(DriverConfig(end_point=end_point, mock_http=mock_http))


def _require_driver(end_point: str | None, username: str | None) -> tuple[StorageDriver, RequestContext]:
    cfg = load_config() or {}
    url = end_point or cfg.get("end_point")
    user = username or cfg.get("username")
    if not url or not user:
        typer.echo("error: no saved settings. run 'ncfs login' or pass --end-point and --user", err=True)
        raise typer.Exit(1)
    driver = _get_driver(url, bool(cfg.get("mock_http", False)))
    return driver, RequestContext(username=user, token=cfg.get("token"))


def _ref(path: str) -> Reference:
    """命令行路径 → Reference；统一加前导 /。"""
    return Reference(path="/" + (path or "").strip("/"))


def _fail(e: Exception) -> typer.Exit:
    typer.echo(f"error: {e}", err=True)
    return typer.Exit(1)


# ------------------------- login / logout / info -------------------------


@app.command("login", help="Save end point and username to local config")
def login(
    end_point: Annotated[Optional[str], typer.Option("--end-point", "-e", help="Service end point URL")] = None,
    username: Annotated[Optional[str], typer.Option("--username", "-u", help="Username")] = None,
    token: Annotated[Optional[str], typer.Option("--token", "-t", help="Access token (unsafe in shell)")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use the built-in simulator instead of the network")] = False,
) -> None:
    end_point = end_point or input("End point (e.g. http://nextcloud/apps/sciencemesh/): ").strip()
    if not end_point:
        typer.echo("error: end point required", err=True)
        raise typer.Exit(1)
    username = username or input("Username: ").strip()
    if not username:
        typer.echo("error: username required", err=True)
        raise typer.Exit(1)
    save_config(end_point, username, token, mock)
    typer.echo("Saved.")


@app.command("logout", help="Clear saved settings")
def logout() -> None:
    if clear_config():
        typer.echo("Cleared.")
    else:
        typer.echo("No saved settings.")


@app.command("info", help="Show saved end point and username")
def info_cmd() -> None:
    cfg = load_config()
    if not cfg:
        typer.echo("Not logged in. Run 'ncfs login' or pass --end-point and --user to commands.")
        return
    typer.echo(f"end_point: {cfg.get('end_point')}")
    typer.echo(f"username: {cfg.get('username')}")
    typer.echo(f"token: {'yes' if cfg.get('token') else 'no'}")
    if cfg.get("mock_http"):
        typer.echo("mock: yes")


# ------------------------- home -------------------------


@app.command("home", help="Show the home directory")
def home_cmd(end_point: _end_point_option = None, user: _user_option = None) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        home = driver.get_home(ctx)
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    typer.echo(home)


@app.command("mkhome", help="Create the home directory")
def mkhome_cmd(end_point: _end_point_option = None, user: _user_option = None) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        driver.create_home(ctx)
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    typer.echo("Created.")


# ------------------------- mkdir / ls / stat / rm / mv -------------------------


@app.command("mkdir", help="Create a folder")
def mkdir_cmd(
    path: Annotated[str, typer.Argument(help="Remote path (e.g. /subdir)")],
    end_point: _end_point_option = None,
    user: _user_option = None,
) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        driver.create_dir(ctx, _ref(path))
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    typer.echo("Created.")


@app.command("ls", help="List a folder")
def ls_cmd(
    path: Annotated[str, typer.Argument(help="Remote folder (default: /)")] = "/",
    end_point: _end_point_option = None,
    user: _user_option = None,
) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        entries = driver.list_folder(ctx, _ref(path))
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    for info in entries:
        kind = _KIND.get(info.type, "?")
        typer.echo(f"  {kind} {info.path}  {_format_size(info.size)}  {info.etag or '-'}")


@app.command("stat", help="Show metadata of a file or folder (JSON)")
def stat_cmd(
    path: Annotated[str, typer.Argument(help="Remote path")],
    key: Annotated[Optional[list[str]], typer.Option("--key", "-k", help="Metadata key to request (repeatable)")] = None,
    end_point: _end_point_option = None,
    user: _user_option = None,
) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        info = driver.get_md(ctx, _ref(path), key)
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    typer.echo(json.dumps(as_dict(info), ensure_ascii=False, indent=2))


@app.command("rm", help="Delete a file or folder (moves it to the recycle bin)")
def rm_cmd(
    path: Annotated[str, typer.Argument(help="Remote path")],
    end_point: _end_point_option = None,
    user: _user_option = None,
) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        driver.delete(ctx, _ref(path))
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    typer.echo("Deleted.")


@app.command("mv", help="Move or rename")
def mv_cmd(
    src: Annotated[str, typer.Argument(help="Source path")],
    dst: Annotated[str, typer.Argument(help="Destination path")],
    end_point: _end_point_option = None,
    user: _user_option = None,
) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        driver.move(ctx, _ref(src), _ref(dst))
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    typer.echo("Moved.")


# ------------------------- upload / download -------------------------


@app.command("upload", help="Upload a local file")
def upload_cmd(
    path: Annotated[Path, typer.Argument(help="Local file path")],
    remote: Annotated[Optional[str], typer.Option("--to", "-t", help="Remote path (default: /<local name>)")] = None,
    end_point: _end_point_option = None,
    user: _user_option = None,
) -> None:
    if not path.is_file():
        typer.echo(f"error: not a file: {path}", err=True)
        raise typer.Exit(1)
    driver, ctx = _require_driver(end_point, user)
    try:
        with path.open("rb") as f:
            driver.upload(ctx, _ref(remote or path.name), f)
    except (StorageError, OSError) as e:
        raise _fail(e)
    finally:
        driver.close()
    typer.echo("Uploaded.")


@app.command("download", help="Download a file or one of its revisions")
def download_cmd(
    remote_path: Annotated[str, typer.Argument(help="Remote path (e.g. some/file.txt)")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Local path (default: same name)")] = None,
    revision: Annotated[Optional[str], typer.Option("--revision", "-r", help="Revision key")] = None,
    end_point: _end_point_option = None,
    user: _user_option = None,
) -> None:
    ref = _ref(remote_path)
    out = output if output is not None else Path(Path(ref.path).name or "download")
    driver, ctx = _require_driver(end_point, user)
    try:
        stream = driver.download_revision(ctx, ref, revision) if revision else driver.download(ctx, ref)
        with stream, out.open("wb") as f:
            for chunk in stream:
                f.write(chunk)
    except (StorageError, OSError) as e:
        raise _fail(e)
    finally:
        driver.close()
    typer.echo(f"Saved to {out}.")


# ------------------------- revisions / quota / grants -------------------------


@app.command("revisions", help="List revisions of a file")
def revisions_cmd(
    path: Annotated[str, typer.Argument(help="Remote file path")],
    restore: Annotated[Optional[str], typer.Option("--restore", help="Restore the revision with this key")] = None,
    end_point: _end_point_option = None,
    user: _user_option = None,
) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        if restore:
            driver.restore_revision(ctx, _ref(path), restore)
            typer.echo("Restored.")
            return
        versions = driver.list_revisions(ctx, _ref(path))
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    for v in versions:
        typer.echo(f"  {v.key}  {_format_size(v.size)}  {v.mtime}  {v.etag}")


@app.command("quota", help="Show used and total bytes")
def quota_cmd(end_point: _end_point_option = None, user: _user_option = None) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        q = driver.get_quota(ctx)
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    typer.echo(f"used: {_format_size(q.used_bytes)} / total: {_format_size(q.total_bytes)}")


@app.command("grants", help="List grants on a path")
def grants_cmd(
    path: Annotated[str, typer.Argument(help="Remote path")],
    end_point: _end_point_option = None,
    user: _user_option = None,
) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        grants = driver.list_grants(ctx, _ref(path))
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    if not grants:
        typer.echo("No grants.")
    for g in grants:
        if g.grantee.user_id is not None:
            who = f"user {g.grantee.user_id.opaque_id}@{g.grantee.user_id.idp}"
        elif g.grantee.group_id is not None:
            who = f"group {g.grantee.group_id.opaque_id}@{g.grantee.group_id.idp}"
        else:
            who = "?"
        typer.echo(f"  {who}  {','.join(g.permissions.granted()) or '-'}")


# ------------------------- recycle -------------------------


recycle_app = typer.Typer(help="Recycle bin subcommands")
app.add_typer(recycle_app, name="recycle")


@recycle_app.command("list", help="List deleted items")
def recycle_list(
    key: Annotated[str, typer.Option("--key", "-k", help="Only items under this key")] = "",
    path: Annotated[str, typer.Option("--path", "-p", help="Sub path relative to the key")] = "",
    end_point: _end_point_option = None,
    user: _user_option = None,
) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        items = driver.list_recycle(ctx, key, path)
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    if not items:
        typer.echo("Recycle bin is empty.")
    for item in items:
        original = item.ref.path if item.ref else "-"
        typer.echo(f"  {item.key}  {original}  {_format_size(item.size)}  {item.deletion_time.seconds}")


@recycle_app.command("restore", help="Restore a deleted item")
def recycle_restore(
    key: Annotated[str, typer.Argument(help="Recycle item key")],
    path: Annotated[str, typer.Argument(help="Original path of the item")],
    to: Annotated[Optional[str], typer.Option("--to", help="Restore to this path instead")] = None,
    end_point: _end_point_option = None,
    user: _user_option = None,
) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        driver.restore_recycle_item(ctx, key, path, _ref(to) if to else None)
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    typer.echo("Restored.")


@recycle_app.command("purge", help="Permanently delete one item")
def recycle_purge(
    key: Annotated[str, typer.Argument(help="Recycle item key")],
    path: Annotated[str, typer.Argument(help="Original path of the item")],
    end_point: _end_point_option = None,
    user: _user_option = None,
) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        driver.purge_recycle_item(ctx, key, path)
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    typer.echo("Purged.")


@recycle_app.command("empty", help="Permanently delete everything in the recycle bin")
def recycle_empty(end_point: _end_point_option = None, user: _user_option = None) -> None:
    driver, ctx = _require_driver(end_point, user)
    try:
        driver.empty_recycle(ctx)
    except StorageError as e:
        raise _fail(e)
    finally:
        driver.close()
    typer.echo("Emptied.")


# ------------------------- main -------------------------


def main() -> None:
    app()


if __name__ == "__main__":
    main()
