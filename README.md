# sixfs

A small Unix-style file system written in plain Python, with no
dependencies beyond the standard library. It covers the whole stack:

- `sixfs.layout`: the on-disk format (superblock, redo log, inode blocks,
  free-block bitmap, data blocks), its limits, and the records
  `SuperBlock`, `DiskInode`, `DirEntry` and `Stat`, each with
  `pack`/`unpack` where it is stored on disk.
- `sixfs.mkfs`: builds images whose root directory holds a set of files.
- `sixfs.disk.MemDisk`: a disk of 512-byte blocks kept in memory.
- `sixfs.bcache.BufferCache`: a fixed set of cached blocks kept in
  most-recently-used order.
- `sixfs.log.Log`: a write-ahead redo log that commits groups of block
  writes atomically and recovers a committed transaction at start-up.
- `sixfs.fs.FileSystem`: block allocation, inodes, file contents,
  directories and path lookup.
- `sixfs.file.FileTable`: reference-counted open files over inodes and
  pipes, and `sixfs.pipe.Pipe`, a bounded 512-byte pipe.
- `sixfs.console.Console` (line-edited input, echoed output) and
  `sixfs.keyboard.Keyboard` (PC scan codes to characters).
- Tools: `sixfs.grep`, `sixfs.ls`, `sixfs.fmt` and the `sixfs` command.

## Install

```
pip install .
```

To run the tests as well:

```
pip install .[test]
pytest
```

## Building an image

```
sixfs-mkfs fs.img README notes.txt
```

This writes `fs.img`, an image of 1000 blocks with room for 200 inodes.
Its root directory holds `.`, `..` and one entry for each file you list.
A leading `_` is dropped from a file's name, and a name may not contain
`/`. You can also build an image in code:

```python
from sixfs.mkfs import make_image

image = make_image([("hello.txt", b"hello world\n")])
```

`make_image` takes `(name, data)` pairs and returns the image as bytes.
`ImageBuilder` gives finer control through `ialloc`, `iappend`, `add_file`
and `finish`.

## Using a file system

```python
from sixfs.disk import MemDisk
from sixfs.fs import FileSystem
from sixfs.file import FileTable
from sixfs.ls import ls

fs = FileSystem(MemDisk.from_image(image))
print(ls(fs, "/"))

with fs.log.transaction():
    ip = fs.namei("/hello.txt")
files = FileTable(fs)
f = files.open_inode(ip, readable=True, writable=False)
print(files.read(f, 100))     # b'hello world\n'
files.close(f)
```

`FileSystem` sets up its own `BufferCache` and `Log` over the disk
(available as `fs.cache` and `fs.log`). It provides the inode layer:
`ialloc`, `iget`, `idup`, `ilock`, `iunlock`, `iput`, `iunlockput`,
`iupdate`, `stati`, `readi`, `writei`, `dirlookup`, `dirlink`, `namei` and
`nameiparent`. Any call that may write blocks, `iput` included, must run
inside `fs.log.transaction()`. Broken invariants, such as running out of
buffers, inodes or blocks, raise `sixfs.layout.Panic`. Adding a name that
already exists to a directory raises `FileExistsError`.

`FileTable` adds `alloc`, `dup`, `close`, `stat`, `read`, `write`,
`open_inode` and `pipe`. Writes to an inode are split into pieces small
enough to fit one log transaction each.

## Tools

```
sixfs echo hello world
sixfs cat fs.img hello.txt
sixfs ls fs.img
sixfs ls fs.img '*.txt'
sixfs grep '^hel' fs.img hello.txt
```

`sixfs cat` and `sixfs grep` read standard input when no image is given.
`sixfs ls` lists `.` when no path is given, and a path containing `*` is
matched against the names in the root directory.

From Python:

- `sixfs.grep.grep(pattern, chunks)` yields matching lines. `match`
  handles the small regular-expression language made of `^`, `.`, `*` and
  `$`.
- `sixfs.ls.ls(fs, path)` and `sixfs.ls.ls_glob(fs, pattern)` return
  listing lines of the form `name type inode size`.
- `sixfs.fmt.format(fmt, *args)` implements the `%d`, `%x`, `%p`, `%s`,
  `%c` and `%%` subset of printf.

## What it does not do

- Everything works on an image held in memory. The `sixfs` command never
  writes changes back to the image file, and nothing talks to a real disk.
- There are no operations to create, remove, rename or link files and
  directories in an existing image. `FileSystem` has no unlink or mkdir,
  and the command line offers only reading tools. New content goes in
  through `sixfs-mkfs` or the `FileSystem` and `FileTable` calls above.
- There are no processes, no scheduler and no system-call layer. Blocking
  in `Pipe`, `Console` and `Log` uses ordinary Python threads.