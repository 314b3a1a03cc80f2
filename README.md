# ripdoc

A library for locating Rust crates from a short target specification,
building rustdoc JSON for them with Cargo, and keeping the parsed result in a
disk cache so the same crate is not documented twice.

ripdoc drives the Rust toolchain already installed on the machine: it runs
`cargo`, `rustc` and, where present, `rustup`. rustdoc JSON output needs a
nightly toolchain; when `rustup` is available the build is run with
`+nightly`.

## Target specifications

`ripdoc.target.Target.parse(spec)` reads a target written as
`entrypoint[::path]`:

| Example                              | Entrypoint                                 |
|--------------------------------------|--------------------------------------------|
| `src/lib.rs`                         | `PathEntrypoint` (contains `/` or `\`)     |
| `src/main.rs::my_module::MyStruct`   | `PathEntrypoint`, path `my_module::MyStruct` |
| `.` or `..`                          | `PathEntrypoint`                           |
| `serde`                              | `NameEntrypoint`, no version               |
| `serde@1.0.104::Serialize`           | `NameEntrypoint` with a `semver.Version`   |

An empty string, an empty name, an empty path component (as in `foo::` or
`foo::::bar`) or an unparseable version raises `InvalidTargetError`.

## Resolving targets

`ripdoc.resolved_target.resolve_target(target_str, offline)` parses a
specification and returns a `ResolvedTarget`: a `CargoPath` to the package
directory (`package_root`) and a `filter`, the `::`-joined module path inside
it with its first component in import form (hyphens replaced by underscores).

- A `.rs` file is resolved to the nearest directory above it holding a
  `Cargo.toml`; the file's path below `src/` becomes the module path.
- A package directory is used as it is.
- A workspace directory needs the package name as the first path component;
  without one, the error lists the workspace members.
- A name with a version is taken from Cargo's registry cache, downloading it
  with `cargo fetch` first if needed.
- A name without a version is looked up among the members of the nearest
  workspace, then among its resolved dependencies, and finally on crates.io,
  where the newest stable version is chosen.

With `offline=True` nothing is downloaded: a registry crate needs an explicit
version and must already be in Cargo's cache. The registry helpers are in
`ripdoc.registry` (`fetch_registry_crate`, `fetch_latest_version`,
`find_in_cargo_cache`, `fetch_with_cargo`, `get_cargo_home`).

## Reading documentation

```python
from ripdoc.cache import CacheConfig
from ripdoc.resolved_target import resolve_target
from ripdoc.target import Target

target = Target.parse("serde@1.0.104::Serialize")
print(target.path)                       # ['Serialize']

resolved = resolve_target("./::my_module", offline=True)
crate = resolved.read_crate(
    no_default_features=False,
    all_features=False,
    features=[],
    private_items=False,
    silent=True,
    cache_config=CacheConfig(),
)
print(resolved.filter)                   # 'my_module'
```

`read_crate` returns the rustdoc JSON as a Python dictionary. It documents the
library target if there is one, otherwise the first binary. When `silent` is
false, Cargo's captured output is copied to the terminal. The lower-level
build step is `ripdoc.rustdoc_build.build_rustdoc_json`, which runs
`cargo rustdoc` for a `PackageTarget` and returns a `BuildOutput` naming the
JSON file.

### Caching

Entries are keyed (`ripdoc.cache.CacheKey`) by manifest path, package name
and version, feature flags and list (in any order), the private-item flag and
the `rustc --version` line. They are stored as compressed JSON. The cache
directory is chosen in this order:

1. the directory given with `CacheConfig().with_cache_dir(...)`;
2. the `RIPDOC_CACHE_DIR` environment variable;
3. a `ripdoc` directory inside the user cache directory
   (`XDG_CACHE_HOME` or `~/.cache`, `~/Library/Caches` on macOS,
   `LOCALAPPDATA` on Windows).

`CacheConfig.disabled()` bypasses the cache. An entry that cannot be decoded
is deleted; `read_crate` then rebuilds it.

### Errors

Every failure raises a subclass of `ripdoc.errors.RipdocError`:
`GenerateError`, `ManifestParseError`, `ManifestNotFoundError`,
`ModuleNotFoundError` and `InvalidTargetError`. When rustdoc fails, the
message carries the first compiler error diagnostic; in silent mode it also
includes the captured stderr, cut to 8192 characters
(`ripdoc.rustdoc_error`).

## Command-line helpers

`ripdoc.cli` holds pieces for a front end:

- `check_nightly_toolchain()` raises `GenerateError` unless a nightly
  toolchain can be run;
- `run_cargo_search_fallback(term, offline)` runs `cargo search term`;
- `highlight_matches(text, query, case_sensitive)` wraps every occurrence of
  a query in bold bright-green terminal colours;
- `format_source_location(path, line)` renders `path:line`, `path`, or `-`.

## What this package does not do

It installs no command. It does not render rustdoc JSON as an outline of Rust
code or Markdown, nor list or search the items in a crate: it stops at
producing the parsed JSON, and callers work with that dictionary themselves.

## Running the tests

Install the `test` extra and run `pytest` from the project root.