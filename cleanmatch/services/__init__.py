# CleanMatch Services
