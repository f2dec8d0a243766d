from bucketprobe.cli import main

main()
